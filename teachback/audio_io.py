"""Microphone capture and speaker playback on top of sounddevice."""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator

from teachback.errors import DeviceUnavailable, UnsupportedPlatform

log = logging.getLogger("teachback.live")

INPUT_RATE = 16000
OUTPUT_RATE = 24000
BLOCK_FRAMES = 4096


def _sounddevice():
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        # OSError: the PortAudio library itself is missing
        raise UnsupportedPlatform(
            "This system does not support the audio features needed for live Q&A."
        ) from e
    return sd


def audio_supported() -> None:
    """Raise if live audio cannot work here; return quietly if it can."""
    sd = _sounddevice()
    try:
        sd.query_devices(kind="input")
        sd.query_devices(kind="output")
    except (ValueError, sd.PortAudioError) as e:
        raise DeviceUnavailable("No microphone or speaker is available.") from e


class Microphone:
    """16 kHz mono int16 capture delivered as an async stream of chunks."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        sd = _sounddevice()
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        try:
            self._stream = sd.RawInputStream(
                samplerate=INPUT_RATE,
                channels=1,
                dtype="int16",
                blocksize=BLOCK_FRAMES,
                callback=self._callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            raise DeviceUnavailable(f"Could not open the microphone: {e}") from e
        self._closed = False

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            log.debug("mic status: %s", status)
        self._loop.call_soon_threadsafe(self._queue.put_nowait, bytes(indata))

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.stop()
        self._stream.close()
        self._queue.put_nowait(None)


class Speaker:
    """24 kHz mono int16 playback from a queue of PCM buffers.

    Buffers play back to back; an empty queue plays silence.
    """

    def __init__(self):
        sd = _sounddevice()
        self._lock = threading.Lock()
        self._pending = bytearray()
        try:
            self._stream = sd.RawOutputStream(
                samplerate=OUTPUT_RATE,
                channels=1,
                dtype="int16",
                callback=self._callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            raise DeviceUnavailable(f"Could not open audio output: {e}") from e
        self._closed = False

    def _callback(self, outdata, frames, time_info, status) -> None:
        needed = len(outdata)
        with self._lock:
            chunk = bytes(self._pending[:needed])
            del self._pending[:needed]
        outdata[: len(chunk)] = chunk
        if len(chunk) < needed:
            outdata[len(chunk):] = b"\x00" * (needed - len(chunk))

    def play(self, pcm: bytes, start_at: float) -> None:
        # The stream is continuous, so queue order is play order
        with self._lock:
            self._pending.extend(pcm)

    def stop_all(self) -> None:
        with self._lock:
            self._pending.clear()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.stop_all()
        self._stream.stop()
        self._stream.close()
