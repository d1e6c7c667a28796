"""Session snapshots, usage counters and the key-value store they live in."""
from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Protocol

from teachback.errors import CorruptedSession
from teachback.models import ClassificationResult, QuizState, SessionMetrics, TeachBackContent

log = logging.getLogger("teachback.persistence")

# v1 records predate classification and must never load.
SESSION_KEY = "teachback_session_v2"
GLOSSARY_KEY = "teachback_glossary_v1"
TOUR_KEY = "teachback_tour_completed_v1"

TOTAL_SESSIONS = "teachback_total_sessions"
MASTERED_COUNT = "teachback_mastered_count"
OVERRIDE_COUNT = "teachback_override_count"
UNKNOWN_COUNT = "teachback_unknown_count"
COUNTER_KEYS = (TOTAL_SESSIONS, MASTERED_COUNT, OVERRIDE_COUNT, UNKNOWN_COUNT)


class PersistenceStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process ``PersistenceStore``."""

    def __init__(self, data: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


@dataclass
class SavedSession:
    input_text: str
    classification: ClassificationResult | None
    content: TeachBackContent
    quiz_state: QuizState
    answers: dict[int, str] = field(default_factory=dict)
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    elapsed_seconds: int = 0
    override_context: str | None = None
    options: list[list[str]] | None = None
    image: bytes | None = None
    image_mime_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "input_text": self.input_text,
            "input_image": base64.b64encode(self.image).decode() if self.image else None,
            "input_image_mime_type": self.image_mime_type,
            "classification": self.classification.to_dict() if self.classification else None,
            "override_context": self.override_context,
            "content": self.content.to_dict(),
            "quiz_state": self.quiz_state.value,
            "answers": {str(k): v for k, v in self.answers.items()},
            "options": self.options,
            "metrics": {
                "attempts": self.metrics.attempts,
                "mastery_time_seconds": self.metrics.mastery_time_seconds,
                "reading_grade_after": self.metrics.reading_grade_after,
            },
            "elapsed_seconds": self.elapsed_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SavedSession:
        image = data.get("input_image")
        classification = data.get("classification")
        metrics = data.get("metrics") or {}
        return cls(
            input_text=str(data["input_text"]),
            image=base64.b64decode(image) if image else None,
            image_mime_type=data.get("input_image_mime_type"),
            classification=ClassificationResult.from_dict(classification) if classification else None,
            override_context=data.get("override_context"),
            content=TeachBackContent.from_dict(data["content"]),
            quiz_state=QuizState(data["quiz_state"]),
            answers={int(k): str(v) for k, v in (data.get("answers") or {}).items()},
            options=data.get("options"),
            metrics=SessionMetrics(
                attempts=int(metrics.get("attempts", 0)),
                mastery_time_seconds=metrics.get("mastery_time_seconds"),
                reading_grade_after=metrics.get("reading_grade_after"),
            ),
            elapsed_seconds=int(data.get("elapsed_seconds", 0)),
        )


class SessionRepository:
    """The single saved-session slot."""

    def __init__(self, store: PersistenceStore, key: str = SESSION_KEY):
        self.store = store
        self.key = key

    def save(self, session: SavedSession) -> None:
        self.store.set(self.key, json.dumps(session.to_dict()))

    def load(self) -> SavedSession | None:
        """Return the saved session, or None when the slot is empty.

        A record that fails to parse or has the wrong shape is deleted and
        ``CorruptedSession`` is raised.
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            return SavedSession.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            log.warning("discarding corrupted session record: %s", e)
            self.store.delete(self.key)
            raise CorruptedSession("Failed to load session. Data might be corrupted.") from e

    def clear(self) -> None:
        self.store.delete(self.key)

    def exists(self) -> bool:
        return self.store.get(self.key) is not None


class Counters:
    """Monotonic usage counters stored as plain integer strings."""

    def __init__(self, store: PersistenceStore):
        self.store = store

    def get(self, key: str) -> int:
        raw = self.store.get(key)
        try:
            return int(raw) if raw is not None else 0
        except ValueError:
            return 0

    def increment(self, key: str) -> int:
        value = self.get(key) + 1
        self.store.set(key, str(value))
        return value

    def snapshot(self) -> dict[str, int]:
        return {
            "total_sessions": self.get(TOTAL_SESSIONS),
            "mastered": self.get(MASTERED_COUNT),
            "overrides": self.get(OVERRIDE_COUNT),
            "unknown": self.get(UNKNOWN_COUNT),
        }
