"""Session state machine: classify → generate → quiz, plus save/load/clear."""
from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import asdict
from enum import Enum
from typing import TYPE_CHECKING

from teachback.classifier import classify
from teachback.clock import ElapsedClock
from teachback.config import Settings
from teachback.errors import CorruptedSession, GenerationFailure, InputTooShort, QuizStateError
from teachback.generator import generate_content
from teachback.models import (
    CATEGORIES,
    DOMAIN_TYPES,
    ClassificationResult,
    Notice,
    QuizState,
    SessionMetrics,
    SourceContent,
    TeachBackContent,
)
from teachback.persistence import (
    MASTERED_COUNT,
    OVERRIDE_COUNT,
    UNKNOWN_COUNT,
    Counters,
    PersistenceStore,
    SavedSession,
    SessionRepository,
)
from teachback.quiz import Quiz

if TYPE_CHECKING:
    from teachback.gateway import AIGateway

log = logging.getLogger("teachback.orchestrator")


class PipelineStatus(str, Enum):
    IDLE = "IDLE"
    CLASSIFYING = "CLASSIFYING"
    GENERATING = "GENERATING"
    READY = "READY"
    ERROR = "ERROR"


class SessionOrchestrator:
    """Owns all teach-back state for one user session.

    Commands mutate state in place; user-visible outcomes are queued as
    ``Notice`` objects for the UI to drain.  Only one pipeline may run at a
    time, but guarding that is left to the caller (see ``busy``).
    """

    def __init__(
        self,
        gateway: AIGateway,
        store: PersistenceStore,
        settings: Settings | None = None,
        clock: ElapsedClock | None = None,
        rng: random.Random | None = None,
    ):
        self.gateway = gateway
        self.settings = settings or Settings()
        self.sessions = SessionRepository(store)
        self.counters = Counters(store)
        self.clock = clock or ElapsedClock()
        self.rng = rng or random.Random()
        self.status_listeners: list[Callable[[PipelineStatus], None]] = []
        self.notices: list[Notice] = []

        self.input_text = ""
        self.demo_active = False
        self.error: GenerationFailure | None = None
        self.status = PipelineStatus.IDLE
        self._clear_content()

    # ── State helpers ──

    def _clear_content(self) -> None:
        self.source: SourceContent | None = None
        self.classification: ClassificationResult | None = None
        self.override_context: str | None = None
        self.content: TeachBackContent | None = None
        self.quiz: Quiz | None = None
        self.metrics = SessionMetrics()
        self.clock.reset()

    def _set_status(self, status: PipelineStatus) -> None:
        self.status = status
        log.info("status → %s", status.value)
        for listener in self.status_listeners:
            listener(status)

    def _notify(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))

    def _count(self, key: str) -> None:
        if not self.demo_active:
            self.counters.increment(key)

    def _fail(self, error: GenerationFailure) -> None:
        log.warning("pipeline failed: %s", error)
        self._clear_content()
        self.error = error
        self._set_status(PipelineStatus.ERROR)
        self._notify("error", str(error))

    def _install(self, content: TeachBackContent) -> None:
        self.content = content
        self.metrics.reading_grade_after = content.reading_grade_after
        self.quiz = Quiz(content.qa_items, self.rng)

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # ── Queries ──

    @property
    def busy(self) -> bool:
        return self.status in (PipelineStatus.CLASSIFYING, PipelineStatus.GENERATING)

    @property
    def is_confident(self) -> bool:
        return (
            self.classification is not None
            and self.classification.confidence >= self.settings.confidence_threshold
        )

    @property
    def effective_category(self) -> str | None:
        """Category the current content was (or will be) generated for."""
        if self.override_context:
            return self.override_context
        if self.classification is None:
            return None
        return self.classification.context if self.is_confident else "unknown"

    @property
    def quiz_state(self) -> QuizState:
        return self.quiz.state if self.quiz else QuizState.NOT_STARTED

    @property
    def answers(self) -> dict[int, str]:
        return dict(self.quiz.answers) if self.quiz else {}

    def display_details(self):
        """Domain details to show, or None for "no details available"."""
        if self.content is None or self.content.domain_details is None:
            return None
        expected = DOMAIN_TYPES.get(self.content.context)
        if expected is None or not isinstance(self.content.domain_details, expected):
            return None
        return self.content.domain_details

    # ── Pipeline ──

    async def generate(
        self,
        text: str | None = None,
        image: bytes | None = None,
        mime_type: str | None = None,
    ) -> TeachBackContent | None:
        """Run classify → generate for pasted text or a single image.

        Returns the new content, or None after a ``GenerationFailure`` (the
        failure is kept in ``error`` and every partial result is discarded).
        """
        if image is None:
            text = text or ""
            stripped = text.strip()
            if len(stripped) < self.settings.min_input_chars:
                raise InputTooShort(len(stripped), self.settings.min_input_chars)
            source = SourceContent(text=text)
            self.input_text = text
        else:
            source = SourceContent(image=image, mime_type=mime_type)
            if text is not None:
                self.input_text = text

        self.error = None
        self.demo_active = False
        self._clear_content()
        self.source = source
        self.clock.start()
        self.metrics.attempts = 1

        try:
            self._set_status(PipelineStatus.CLASSIFYING)
            self.classification = await classify(self.gateway, source)
            if self.classification.context == "unknown" or not self.is_confident:
                self._count(UNKNOWN_COUNT)
            log.info(
                "classified as %s (%.2f), generating for %s",
                self.classification.context, self.classification.confidence, self.effective_category,
            )
            self._set_status(PipelineStatus.GENERATING)
            content = await generate_content(
                self.gateway, source, self.effective_category, self.settings.generation_temperature
            )
        except GenerationFailure as e:
            self._fail(e)
            return None

        self._install(content)
        self._set_status(PipelineStatus.READY)
        return content

    async def override_category(self, category: str) -> TeachBackContent | None:
        """Regenerate the current source under *category* without re-classifying."""
        if category not in CATEGORIES:
            raise ValueError(f"unknown category: {category!r}")
        if self.status != PipelineStatus.READY or self.source is None:
            raise QuizStateError("nothing to regenerate")

        self._set_status(PipelineStatus.GENERATING)
        try:
            content = await generate_content(
                self.gateway, self.source, category, self.settings.generation_temperature
            )
        except GenerationFailure as e:
            self._fail(e)
            return None

        self.override_context = category
        self._install(content)
        self.metrics.mastery_time_seconds = None
        if not self.clock.running:
            self.clock.start(self.clock.elapsed)
        self._count(OVERRIDE_COUNT)
        self._set_status(PipelineStatus.READY)
        return content

    # ── Quiz ──

    def _require_quiz(self) -> Quiz:
        if self.quiz is None or self.status != PipelineStatus.READY:
            raise QuizStateError("no quiz is active")
        return self.quiz

    def answer(self, index: int, choice: str) -> None:
        self._require_quiz().answer(index, choice)

    def submit(self) -> QuizState:
        quiz = self._require_quiz()
        state = quiz.submit()
        if state == QuizState.MASTERED and self.metrics.mastery_time_seconds is None:
            self.metrics.mastery_time_seconds = self.clock.stop()
            self._count(MASTERED_COUNT)
        return state

    def try_again(self) -> None:
        self._require_quiz().try_again()
        self.metrics.attempts += 1

    # ── Persistence ──

    def save(self) -> bool:
        if self.content is None or self.quiz is None:
            self._notify("info", "Nothing to save yet.")
            return False
        snapshot = SavedSession(
            input_text=self.input_text,
            image=self.source.image if self.source and self.source.is_image else None,
            image_mime_type=self.source.mime_type if self.source and self.source.is_image else None,
            classification=self.classification,
            override_context=self.override_context,
            content=self.content,
            quiz_state=self.quiz.state,
            answers=dict(self.quiz.answers),
            options=[list(o) for o in self.quiz.options],
            metrics=SessionMetrics(**asdict(self.metrics)),
            elapsed_seconds=self.clock.elapsed,
        )
        self.sessions.save(snapshot)
        self._notify("success", "Session saved successfully!")
        return True

    def load(self) -> bool:
        """Restore the saved snapshot straight to READY.

        A corrupted record is deleted and reported; in-memory state is left
        exactly as it was.
        """
        try:
            saved = self.sessions.load()
            if saved is None:
                self._notify("info", "No saved session found.")
                return False
            if saved.image is not None:
                source = SourceContent(image=saved.image, mime_type=saved.image_mime_type)
            else:
                source = SourceContent(text=saved.input_text)
            quiz = Quiz(
                saved.content.qa_items,
                self.rng,
                state=saved.quiz_state,
                answers=saved.answers,
                options=saved.options,
            )
        except CorruptedSession as e:
            self._notify("error", str(e))
            return False
        except ValueError as e:
            log.warning("discarding unusable session record: %s", e)
            self.sessions.clear()
            self._notify("error", "Failed to load session. Data might be corrupted.")
            return False

        self.demo_active = False
        self.error = None
        self.input_text = saved.input_text
        self.source = source
        self.classification = saved.classification
        self.override_context = saved.override_context
        self.content = saved.content
        self.quiz = quiz
        self.metrics = saved.metrics
        self.clock.reset()
        if quiz.state in (QuizState.IN_PROGRESS, QuizState.SUBMITTED):
            self.clock.start(saved.elapsed_seconds)
        else:
            self.clock.set_elapsed(saved.elapsed_seconds)
        self._set_status(PipelineStatus.READY)
        self._notify("success", "Session loaded!")
        return True

    def clear(self, keep_input: bool = False) -> None:
        self.sessions.clear()
        self.reset(clear_input=not keep_input)
        self._notify("info", "Session cleared.")

    def reset(self, clear_input: bool = False) -> None:
        if clear_input:
            self.input_text = ""
        self._clear_content()
        self.demo_active = False
        self.error = None
        self._set_status(PipelineStatus.IDLE)

    # ── Demo ──

    def enter_demo(
        self,
        input_text: str,
        classification: ClassificationResult,
        content: TeachBackContent,
    ) -> None:
        """Show canned content as if it had just been generated."""
        self.reset()
        self.demo_active = True
        self.input_text = input_text
        self.classification = classification
        self._install(content)
        self.metrics.attempts = 1
        self.clock.start(0)
        self._set_status(PipelineStatus.READY)

    def leave_demo(self) -> None:
        self.demo_active = False

    # ── View ──

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "error": str(self.error) if self.error else None,
            "busy": self.busy,
            "demo_active": self.demo_active,
            "input_text": self.input_text,
            "has_image": bool(self.source and self.source.is_image),
            "classification": self.classification.to_dict() if self.classification else None,
            "is_confident": self.is_confident,
            "effective_category": self.effective_category,
            "override_context": self.override_context,
            "content": self.content.to_dict() if self.content else None,
            "details_available": self.display_details() is not None,
            "quiz": self.quiz.to_dict() if self.quiz else None,
            "metrics": asdict(self.metrics),
            "elapsed_seconds": self.clock.elapsed,
            "elapsed": self.clock.formatted,
            "has_saved_session": self.sessions.exists(),
        }
