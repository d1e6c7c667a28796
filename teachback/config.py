from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "llm_provider": "gemini",
    "llm_model": "gemini-2.5-flash",
    "ollama_url": "http://localhost:11434",
    "tts_provider": "gemini",
    "tts_model": "gemini-2.5-flash-preview-tts",
    "live_model": "gemini-2.5-flash-native-audio-preview-09-2025",
    "db_path": "teachback.db",
    "audio_cache_dir": "audio_cache",
    "confidence_threshold": 0.6,
    "min_input_chars": 20,
    "generation_temperature": 0.5,
    "gateway_timeout_seconds": 120,
}


@dataclass
class Settings:
    llm_provider: str = DEFAULTS["llm_provider"]
    llm_model: str = DEFAULTS["llm_model"]
    ollama_url: str = DEFAULTS["ollama_url"]
    tts_provider: str = DEFAULTS["tts_provider"]
    tts_model: str = DEFAULTS["tts_model"]
    live_model: str = DEFAULTS["live_model"]
    db_path: str = DEFAULTS["db_path"]
    audio_cache_dir: str = DEFAULTS["audio_cache_dir"]
    confidence_threshold: float = DEFAULTS["confidence_threshold"]
    min_input_chars: int = DEFAULTS["min_input_chars"]
    generation_temperature: float = DEFAULTS["generation_temperature"]
    gateway_timeout_seconds: int = DEFAULTS["gateway_timeout_seconds"]

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    @property
    def audio_cache_full_path(self) -> Path:
        return self.project_root / self.audio_cache_dir

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in DEFAULTS}


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        known = {f.name for f in Settings.__dataclass_fields__.values()}
        filtered = {k: v for k, v in raw.items() if k in known}
        return Settings(**filtered)
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
