"""TTS audio caching and serving."""
from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from teachback.db import Database
    from teachback.providers.base import TTSProvider

log = logging.getLogger("teachback.audio")


def text_hash(text: str, language: str = "en") -> str:
    return hashlib.sha256(f"{language}:{text}".encode()).hexdigest()[:16]


def strip_markdown(text: str) -> str:
    """Drop the markup a speech engine would read aloud."""
    text = re.sub(r"```.*?```", " ", text, flags=re.DOTALL)
    text = re.sub(r"`([^`]*)`", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]*\)", r"\1", text)
    text = re.sub(r"^\s{0,3}#{1,6}\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"^\s*[-*+]\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"(\*\*|__|\*|_)(.+?)\1", r"\2", text)
    text = re.sub(r"[ \t]+", " ", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


async def get_or_create_audio(
    text: str,
    language: str,
    tts: TTSProvider,
    db: Database,
    cache_dir: Path,
) -> Path | None:
    """Get cached audio or generate new TTS audio."""
    spoken = strip_markdown(text)
    if not spoken:
        return None
    cache_dir.mkdir(parents=True, exist_ok=True)
    h = text_hash(spoken, language)

    cached_path = db.get_audio_cache(h)
    if cached_path:
        p = Path(cached_path)
        if p.exists():
            return p

    output_path = cache_dir / f"{h}.{tts.extension}"
    try:
        await tts.synthesize(spoken, output_path, language)
        db.set_audio_cache(h, str(output_path), tts.name(), language)
        return output_path
    except Exception as e:
        log.warning("TTS error (%s): %s", tts.name(), e)
        return None
