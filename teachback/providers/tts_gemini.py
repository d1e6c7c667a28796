from __future__ import annotations

import os
import wave
from pathlib import Path

from teachback.providers.base import TTSProvider

# Prebuilt voices per language code
VOICES = {
    "en": "Zephyr",
    "es": "Puck",
    "fr": "Charon",
    "de": "Fenrir",
    "hi": "Kore",
}

SAMPLE_RATE = 24000


def write_wav(path: Path, pcm: bytes, rate: int = SAMPLE_RATE) -> Path:
    """Wrap raw 16-bit mono PCM in a WAV container."""
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(pcm)
    return path


class GeminiTTSProvider(TTSProvider):
    extension = "wav"

    def __init__(self, model: str = "gemini-2.5-flash-preview-tts"):
        from google import genai
        self.client = genai.Client(
            api_key=os.environ.get("GEMINI_API_KEY", ""),
        )
        self.model = model

    async def synthesize(self, text: str, output_path: Path, language: str = "en") -> Path:
        from google.genai import types

        voice = VOICES.get(language, VOICES["en"])
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=text,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                    ),
                ),
            ),
        )
        pcm = response.candidates[0].content.parts[0].inline_data.data
        if not pcm:
            raise RuntimeError("speech synthesis returned no audio")
        return write_wav(output_path, pcm)

    def name(self) -> str:
        return f"gemini/{self.model}"
