"""Tests for live voice Q&A scheduling and session lifecycle."""
from __future__ import annotations

import asyncio

import pytest

from conftest import FakeClock
from teachback.errors import DeviceUnavailable, GenerationFailure, QuizStateError
from teachback.live import LiveAudioSession, PlaybackScheduler
from teachback.providers.base import LiveEvent

# One second of 24 kHz int16 mono audio
ONE_SECOND = b"\x00\x00" * 24000


class FakeSink:
    def __init__(self):
        self.played: list[tuple[int, float]] = []
        self.stopped = 0
        self.closed = 0

    def play(self, pcm, start_at):
        self.played.append((len(pcm), start_at))

    def stop_all(self):
        self.stopped += 1

    def close(self):
        self.closed += 1


class FakeMicrophone:
    def __init__(self, chunks=()):
        self._chunks = list(chunks)
        self.closed = 0

    async def chunks(self):
        for chunk in self._chunks:
            yield chunk
        await asyncio.Event().wait()

    def close(self):
        self.closed += 1


class FakeConnection:
    def __init__(self, events=(), hold_open=True):
        self._events = list(events)
        self._hold_open = hold_open
        self.sent: list[bytes] = []
        self.closed = 0

    async def send_audio(self, pcm):
        self.sent.append(pcm)

    async def events(self):
        for event in self._events:
            yield event
        if self._hold_open:
            await asyncio.Event().wait()

    async def close(self):
        self.closed += 1


class FakeConnector:
    def __init__(self, connection=None, error=None, gate=None):
        self.connection = connection or FakeConnection()
        self.error = error
        self.gate = gate
        self.instructions: list[str] = []

    async def connect(self, system_instruction):
        self.instructions.append(system_instruction)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        return self.connection


async def _settle(rounds=25):
    for _ in range(rounds):
        await asyncio.sleep(0)


def _session(connector, mic=None, sink=None, **kwargs):
    mic = mic or FakeMicrophone()
    sink = sink or FakeSink()
    session = LiveAudioSession(
        connector,
        microphone_factory=lambda: mic,
        speaker_factory=lambda: sink,
        probe=kwargs.pop("probe", lambda: None),
        **kwargs,
    )
    return session, mic, sink


class TestPlaybackScheduler:
    def test_first_buffer_starts_now(self):
        now = FakeClock(10.0)
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink, now)
        buf = scheduler.schedule(ONE_SECOND)
        assert buf.start == 10.0
        assert scheduler.cursor == pytest.approx(11.0)

    def test_buffers_are_gapless(self):
        now = FakeClock(10.0)
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink, now)
        scheduler.schedule(ONE_SECOND)
        now.advance(0.25)
        second = scheduler.schedule(ONE_SECOND[: len(ONE_SECOND) // 2])
        assert second.start == pytest.approx(11.0)
        assert scheduler.cursor == pytest.approx(11.5)
        assert [start for _, start in sink.played] == [10.0, pytest.approx(11.0)]

    def test_late_buffer_starts_now(self):
        now = FakeClock(10.0)
        scheduler = PlaybackScheduler(FakeSink(), now)
        scheduler.schedule(ONE_SECOND)
        now.advance(5)
        assert scheduler.schedule(ONE_SECOND).start == 15.0

    def test_stop_all_resets_cursor(self):
        now = FakeClock(10.0)
        sink = FakeSink()
        scheduler = PlaybackScheduler(sink, now)
        scheduler.schedule(ONE_SECOND)
        scheduler.schedule(ONE_SECOND)
        scheduler.stop_all()
        assert sink.stopped == 1
        assert scheduler.cursor == 0.0
        assert scheduler.scheduled == []
        assert scheduler.schedule(ONE_SECOND).start == 10.0

    def test_finished_buffers_pruned(self):
        now = FakeClock(10.0)
        scheduler = PlaybackScheduler(FakeSink(), now)
        scheduler.schedule(ONE_SECOND)
        now.advance(3)
        scheduler.schedule(ONE_SECOND)
        assert len(scheduler.scheduled) == 1


class TestHandleEvent:
    def test_transcripts_flush_on_turn_complete(self):
        session, _, _ = _session(FakeConnector())
        session.handle_event(LiveEvent(input_text="What is "))
        session.handle_event(LiveEvent(input_text="a CBC?"))
        session.handle_event(LiveEvent(output_text="A blood "))
        session.handle_event(LiveEvent(output_text="count."))
        assert session.transcript == []
        assert session.to_dict()["pending_input"] == "What is a CBC?"

        session.handle_event(LiveEvent(turn_complete=True))

        assert [(t.role, t.text) for t in session.transcript] == [
            ("user", "What is a CBC?"),
            ("model", "A blood count."),
        ]
        assert session.to_dict()["pending_output"] == ""

    def test_empty_turn_adds_nothing(self):
        session, _, _ = _session(FakeConnector())
        session.handle_event(LiveEvent(turn_complete=True))
        assert session.transcript == []

    def test_demo_shows_canned_transcript(self):
        session, _, _ = _session(FakeConnector(), demo=True)
        assert len(session.transcript) == 2


class TestLiveLifecycle:
    @pytest.mark.asyncio
    async def test_start_streams_and_plays(self):
        events = [
            LiveEvent(input_text="Hi"),
            LiveEvent(output_text="Hello", audio=ONE_SECOND),
            LiveEvent(turn_complete=True),
        ]
        conn = FakeConnection(events)
        connector = FakeConnector(conn)
        session, mic, sink = _session(connector, mic=FakeMicrophone([b"\x01\x02", b"\x03\x04"]))

        await session.start()
        assert session.live
        await _settle()

        assert conn.sent == [b"\x01\x02", b"\x03\x04"]
        assert len(sink.played) == 1
        assert [t.text for t in session.transcript] == ["Hi", "Hello"]
        assert "voice assistant" in connector.instructions[0]

        await session.stop()
        assert session.state == "idle"
        assert mic.closed == 1
        assert sink.closed == 1
        assert conn.closed == 1

    @pytest.mark.asyncio
    async def test_interrupt_stops_playback(self):
        events = [LiveEvent(audio=ONE_SECOND), LiveEvent(audio=ONE_SECOND), LiveEvent(interrupted=True)]
        session, _, sink = _session(FakeConnector(FakeConnection(events)))
        await session.start()
        await _settle()
        assert sink.stopped == 1
        assert session.scheduler.cursor == 0.0
        await session.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        conn = FakeConnection()
        session, mic, sink = _session(FakeConnector(conn))
        await session.start()
        await session.stop()
        await session.stop()
        assert conn.closed == 1
        assert mic.closed == 1
        assert sink.closed == 1

    @pytest.mark.asyncio
    async def test_stop_before_start(self):
        session, _, _ = _session(FakeConnector())
        await session.stop()
        assert session.state == "idle"

    @pytest.mark.asyncio
    async def test_stop_during_connect_wins(self):
        gate = asyncio.Event()
        conn = FakeConnection()
        session, mic, _ = _session(FakeConnector(conn, gate=gate))

        start = asyncio.create_task(session.start())
        await asyncio.sleep(0)
        assert session.state == "connecting"
        await session.stop()
        gate.set()
        await start

        assert session.state == "idle"
        assert conn.closed == 1
        assert mic.closed == 0

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        session, _, _ = _session(FakeConnector(error=RuntimeError("refused")))
        with pytest.raises(GenerationFailure):
            await session.start()
        assert session.state == "idle"

    @pytest.mark.asyncio
    async def test_server_closing_ends_session(self):
        conn = FakeConnection([LiveEvent(output_text="Bye")], hold_open=False)
        session, _, _ = _session(FakeConnector(conn))
        await session.start()
        await _settle()
        assert session.state == "idle"
        assert conn.closed == 1

    @pytest.mark.asyncio
    async def test_missing_device(self):
        def probe():
            raise DeviceUnavailable("no microphone")

        connector = FakeConnector()
        session, _, _ = _session(connector, probe=probe)
        with pytest.raises(DeviceUnavailable):
            await session.start()
        assert connector.instructions == []
        assert session.state == "idle"

    @pytest.mark.asyncio
    async def test_demo_refuses_to_start(self):
        session, _, _ = _session(FakeConnector(), demo=True)
        with pytest.raises(QuizStateError):
            await session.start()
