from __future__ import annotations

from pathlib import Path

from teachback.providers.base import TTSProvider

VOICES = {
    "en": "en-US-AriaNeural",
    "es": "es-ES-ElviraNeural",
    "fr": "fr-FR-DeniseNeural",
    "de": "de-DE-KatjaNeural",
    "hi": "hi-IN-SwaraNeural",
}


class EdgeTTSProvider(TTSProvider):
    def __init__(self, voice: str | None = None):
        # None picks a voice per language
        self.voice = voice

    async def synthesize(self, text: str, output_path: Path, language: str = "en") -> Path:
        import edge_tts

        voice = self.voice or VOICES.get(language, VOICES["en"])
        communicate = edge_tts.Communicate(text, voice)
        await communicate.save(str(output_path))
        return output_path

    def name(self) -> str:
        return f"edge-tts/{self.voice or 'auto'}"
