"""Two-step audio translation: transcribe, then translate."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from teachback.errors import GenerationFailure
from teachback.models import SUPPORTED_LANGUAGES
from teachback.prompts import TRANSCRIBE_PROMPT, TRANSLATE_PROMPT
from teachback.providers.base import Attachment

if TYPE_CHECKING:
    from teachback.providers.base import LLMProvider

log = logging.getLogger("teachback.translate")

FAILURE_MESSAGE = "Failed to process audio. Please try again."


async def transcribe_and_translate(
    llm: LLMProvider,
    audio: bytes,
    mime_type: str,
    source_language: str,
    target_language: str,
) -> str:
    """Transcribe recorded speech and translate it to *target_language*.

    Any failure, including an empty transcript, becomes one
    ``GenerationFailure`` with a user-facing message.
    """
    for code in (source_language, target_language):
        if code not in SUPPORTED_LANGUAGES:
            raise ValueError(f"unsupported language: {code!r}")
    if not audio:
        raise ValueError("no audio provided")

    try:
        transcript = await llm.generate(
            TRANSCRIBE_PROMPT.format(language=SUPPORTED_LANGUAGES[source_language]),
            0.0,
            attachment=Attachment(audio, mime_type),
        )
        if not transcript or not transcript.strip():
            raise ValueError("transcription returned empty text")
        log.info("transcribed %d chars (%s)", len(transcript), source_language)

        translated = await llm.generate(
            TRANSLATE_PROMPT.format(
                language=SUPPORTED_LANGUAGES[target_language], text=transcript.strip()
            ),
            0.3,
        )
    except Exception as e:
        log.warning("transcribe/translate failed: %s", e)
        raise GenerationFailure(FAILURE_MESSAGE) from e
    return translated.strip()
