from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import AsyncIterator

from teachback.providers.base import LiveConnection, LiveEvent

log = logging.getLogger("teachback.live")

INPUT_MIME = "audio/pcm;rate=16000"


class GeminiLiveConnection(LiveConnection):
    def __init__(self, session, stack: contextlib.AsyncExitStack):
        self._session = session
        self._stack = stack
        self._closed = False

    async def send_audio(self, pcm: bytes) -> None:
        from google.genai import types

        await self._session.send_realtime_input(
            audio=types.Blob(data=pcm, mime_type=INPUT_MIME),
        )

    async def events(self) -> AsyncIterator[LiveEvent]:
        # receive() ends after each turn, so keep re-entering it
        while not self._closed:
            async for message in self._session.receive():
                content = message.server_content
                if content is None:
                    continue
                event = LiveEvent(
                    turn_complete=bool(content.turn_complete),
                    interrupted=bool(content.interrupted),
                )
                if content.input_transcription and content.input_transcription.text:
                    event.input_text = content.input_transcription.text
                if content.output_transcription and content.output_transcription.text:
                    event.output_text = content.output_transcription.text
                if content.model_turn:
                    for part in content.model_turn.parts or []:
                        if part.inline_data and part.inline_data.data:
                            event.audio += part.inline_data.data
                yield event

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stack.aclose()


class GeminiLiveConnector:
    """Opens live sessions; one connector is shared across sessions."""

    def __init__(self, model: str = "gemini-2.5-flash-native-audio-preview-09-2025"):
        from google import genai
        self.client = genai.Client(
            api_key=os.environ.get("GEMINI_API_KEY", ""),
        )
        self.model = model

    async def connect(self, system_instruction: str) -> GeminiLiveConnection:
        from google.genai import types

        config = types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            system_instruction=system_instruction,
            input_audio_transcription=types.AudioTranscriptionConfig(),
            output_audio_transcription=types.AudioTranscriptionConfig(),
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name="Zephyr"),
                ),
            ),
        )
        stack = contextlib.AsyncExitStack()
        session = await stack.enter_async_context(
            self.client.aio.live.connect(model=self.model, config=config)
        )
        log.info("live session opened (%s)", self.model)
        return GeminiLiveConnection(session, stack)

    def name(self) -> str:
        return f"gemini-live/{self.model}"
