"""Live voice Q&A: mic audio up, spoken replies and transcripts down."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from teachback.audio_io import OUTPUT_RATE, Microphone, Speaker, audio_supported
from teachback.demo_data import DEMO_LIVE_TRANSCRIPT
from teachback.errors import GenerationFailure, QuizStateError
from teachback.models import ChatTurn
from teachback.prompts import LIVE_SYSTEM_INSTRUCTION
from teachback.providers.base import LiveConnection, LiveEvent

log = logging.getLogger("teachback.live")


class AudioSink(Protocol):
    def play(self, pcm: bytes, start_at: float) -> None: ...

    def stop_all(self) -> None: ...

    def close(self) -> None: ...


@dataclass
class ScheduledBuffer:
    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration


class PlaybackScheduler:
    """Gapless scheduling of reply audio with a running next-start cursor."""

    def __init__(self, sink: AudioSink, now: Callable[[], float] = time.monotonic,
                 sample_rate: int = OUTPUT_RATE):
        self.sink = sink
        self.now = now
        self.sample_rate = sample_rate
        self.cursor = 0.0
        self.scheduled: list[ScheduledBuffer] = []

    def schedule(self, pcm: bytes) -> ScheduledBuffer:
        now = self.now()
        duration = len(pcm) / 2 / self.sample_rate  # int16 mono
        start = max(self.cursor, now)
        self.cursor = start + duration
        self.scheduled = [b for b in self.scheduled if b.end > now]
        buf = ScheduledBuffer(start, duration)
        self.scheduled.append(buf)
        self.sink.play(pcm, start)
        return buf

    def stop_all(self) -> None:
        self.sink.stop_all()
        self.scheduled.clear()
        self.cursor = 0.0


class LiveConnector(Protocol):
    async def connect(self, system_instruction: str) -> LiveConnection: ...


class LiveAudioSession:
    """One voice conversation at a time.

    ``stop`` can be called any number of times, including while ``start`` is
    still connecting; a start that loses that race tears down whatever it
    managed to open.
    """

    def __init__(
        self,
        connector: LiveConnector | None,
        microphone_factory: Callable[[], Microphone] = Microphone,
        speaker_factory: Callable[[], AudioSink] = Speaker,
        probe: Callable[[], None] = audio_supported,
        demo: bool = False,
        now: Callable[[], float] = time.monotonic,
    ):
        self.connector = connector
        self.microphone_factory = microphone_factory
        self.speaker_factory = speaker_factory
        self.probe = probe
        self.demo = demo
        self.now = now

        self.state = "idle"  # idle | connecting | live
        self.error: str | None = None
        self.transcript: list[ChatTurn] = (
            [ChatTurn(t.role, t.text) for t in DEMO_LIVE_TRANSCRIPT] if demo else []
        )
        self.scheduler: PlaybackScheduler | None = None
        self._input_buf = ""
        self._output_buf = ""
        self._generation = 0
        self._conn: LiveConnection | None = None
        self._mic = None
        self._speaker: AudioSink | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def live(self) -> bool:
        return self.state == "live"

    async def start(self) -> None:
        if self.demo:
            raise QuizStateError("Live Q&A is not available during the demo.")
        if self.connector is None:
            raise QuizStateError("no live backend configured")
        if self.state != "idle":
            return
        self.probe()

        self._generation += 1
        gen = self._generation
        self.state = "connecting"
        self.error = None
        self.transcript = []
        self._input_buf = ""
        self._output_buf = ""

        try:
            conn = await self.connector.connect(LIVE_SYSTEM_INSTRUCTION)
        except Exception as e:
            log.warning("live connect failed: %s", e)
            if gen == self._generation:
                self.state = "idle"
            raise GenerationFailure("Could not connect to the live assistant.") from e

        if gen != self._generation:
            # stop() won the race
            await conn.close()
            return
        self._conn = conn

        try:
            self._speaker = self.speaker_factory()
            self._mic = self.microphone_factory()
        except Exception:
            await self.stop()
            raise

        self.scheduler = PlaybackScheduler(self._speaker, self.now)
        self._tasks = [
            asyncio.create_task(self._pump_microphone(self._mic, conn, gen)),
            asyncio.create_task(self._receive(conn, gen)),
        ]
        self.state = "live"
        log.info("live session started")

    async def _pump_microphone(self, mic, conn: LiveConnection, gen: int) -> None:
        try:
            async for chunk in mic.chunks():
                await conn.send_audio(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._end_with_error(gen, e)

    async def _receive(self, conn: LiveConnection, gen: int) -> None:
        try:
            async for event in conn.events():
                self.handle_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._end_with_error(gen, e)
            return
        if gen == self._generation:
            await self.stop()

    async def _end_with_error(self, gen: int, error: Exception) -> None:
        if gen != self._generation:
            return
        log.warning("live session error: %s", error)
        self.error = "The live session ended unexpectedly. Please try again."
        await self.stop()

    def handle_event(self, event: LiveEvent) -> None:
        if event.output_text:
            self._output_buf += event.output_text
        if event.input_text:
            self._input_buf += event.input_text
        if event.turn_complete:
            self._flush_turn()
        if event.audio and self.scheduler is not None:
            self.scheduler.schedule(event.audio)
        if event.interrupted and self.scheduler is not None:
            self.scheduler.stop_all()

    def _flush_turn(self) -> None:
        user = self._input_buf.strip()
        model = self._output_buf.strip()
        if user:
            self.transcript.append(ChatTurn("user", user))
        if model:
            self.transcript.append(ChatTurn("model", model))
        self._input_buf = ""
        self._output_buf = ""

    async def stop(self) -> None:
        self._generation += 1
        self.state = "idle"

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        self._tasks = []
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        mic, self._mic = self._mic, None
        speaker, self._speaker = self._speaker, None
        conn, self._conn = self._conn, None
        if self.scheduler is not None:
            self.scheduler.cursor = 0.0
            self.scheduler.scheduled.clear()
            self.scheduler = None

        for name, close in (
            ("microphone", mic.close if mic else None),
            ("speaker", speaker.close if speaker else None),
        ):
            if close is None:
                continue
            try:
                close()
            except Exception as e:
                log.warning("error closing %s: %s", name, e)
        if conn is not None:
            try:
                await conn.close()
            except Exception as e:
                log.warning("error closing live connection: %s", e)
            log.info("live session stopped")

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "demo": self.demo,
            "error": self.error,
            "transcript": [t.to_dict() for t in self.transcript],
            "pending_input": self._input_buf,
            "pending_output": self._output_buf,
        }
