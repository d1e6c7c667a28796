"""Guided tour over canned demo content, kept in step with the active tab."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from teachback.demo_data import DEMO_CLASSIFICATION, SAMPLE_INPUT_TEXT, demo_content
from teachback.errors import QuizStateError
from teachback.persistence import TOUR_KEY, PersistenceStore

if TYPE_CHECKING:
    from teachback.orchestrator import SessionOrchestrator

log = logging.getLogger("teachback.tour")


class Tab(str, Enum):
    TEACH_BACK = "teach-back"
    CHAT_HELPER = "chat-helper"
    LIVE_QA = "live-qa"


@dataclass(frozen=True)
class TourStep:
    anchor_id: str
    required_tab: Tab | None  # None: visible on every tab
    content: str
    placement: str = "bottom"


TOUR_STEPS = (
    TourStep("body", None,
             "Welcome to the Teach-Back Engine! Let's take a quick tour of how it works.",
             "center"),
    TourStep("input-area", Tab.TEACH_BACK,
             "You start here. For this demo, I've added some sample medical instructions."),
    TourStep("input-buttons", Tab.TEACH_BACK,
             "You can also use these buttons to dictate instructions, listen to the text, or upload a PDF."),
    TourStep("generate-button", Tab.TEACH_BACK,
             "After providing text, you'd click this button. For our tour, the results are already "
             "generated below."),
    TourStep("simplified-text-card", Tab.TEACH_BACK,
             "This is the simplified version of the instructions, written in plain language. Any "
             "safety warnings are flagged here."),
    TourStep("quiz-card", Tab.TEACH_BACK,
             "Next, you take a short quiz to check your understanding of the most important points."),
    TourStep("metrics-footer", Tab.TEACH_BACK,
             "This footer tracks your progress, showing the reading level, your quiz attempts, and how "
             "long it takes to master the material."),
    TourStep("tabs", None,
             "Beyond the main Teach-Back tool, you have other ways to get help. Let's look at the Chat "
             "Helper next."),
    TourStep("chat-helper-content", Tab.CHAT_HELPER,
             "The Chat Helper is perfect for asking specific questions about words or phrases you "
             "don't understand.",
             "top"),
    TourStep("live-qa-tab", None, "Now let's check out the Live Q&A."),
    TourStep("live-qa-content", Tab.LIVE_QA,
             "For a more natural conversation, you can use Live Q&A to talk directly with the AI "
             "assistant using your voice.",
             "top"),
    TourStep("session-buttons", Tab.TEACH_BACK,
             "Finally, remember you can save your progress and load it later, or clear everything to "
             "start fresh. Enjoy the app!"),
)

DISCARD_OFFER = "Would you like to clear the demo content and start your own session?"


class TourCoordinator:
    """Drives the tour script.

    Moving to a step whose anchor lives on another tab switches tabs first.
    The tour never calls the backend: it installs canned content into the
    orchestrator and leaves it in demo mode until the discard offer is
    answered.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        store: PersistenceStore,
        on_tab_change: Callable[[Tab], None] | None = None,
        steps: tuple[TourStep, ...] = TOUR_STEPS,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.on_tab_change = on_tab_change
        self.steps = steps
        self.active_tab = Tab.TEACH_BACK
        self.index: int | None = None
        self.offer_pending = False

    @property
    def running(self) -> bool:
        return self.index is not None

    @property
    def current_step(self) -> TourStep | None:
        return self.steps[self.index] if self.index is not None else None

    @property
    def tour_completed(self) -> bool:
        return self.store.get(TOUR_KEY) == "true"

    def switch_tab(self, tab: Tab) -> None:
        if tab == self.active_tab:
            return
        self.active_tab = tab
        if self.on_tab_change is not None:
            self.on_tab_change(tab)

    def _go(self, index: int) -> TourStep:
        step = self.steps[index]
        if step.required_tab is not None and step.required_tab != self.active_tab:
            self.switch_tab(step.required_tab)
        self.index = index
        return step

    def _require_running(self) -> int:
        if self.index is None:
            raise QuizStateError("the tour is not running")
        return self.index

    def start(self) -> TourStep:
        self.orchestrator.enter_demo(SAMPLE_INPUT_TEXT, DEMO_CLASSIFICATION, demo_content())
        self.offer_pending = False
        self.switch_tab(Tab.TEACH_BACK)
        log.info("tour started")
        return self._go(0)

    def next(self) -> TourStep | None:
        """Advance; past the last step the tour finishes and returns None."""
        index = self._require_running()
        if index + 1 >= len(self.steps):
            self.finish()
            return None
        return self._go(index + 1)

    def back(self) -> TourStep:
        index = self._require_running()
        return self._go(max(0, index - 1))

    def skip(self) -> None:
        self._require_running()
        self._end("skipped")

    def finish(self) -> None:
        self._require_running()
        self._end("finished")

    def _end(self, how: str) -> None:
        self.index = None
        self.store.set(TOUR_KEY, "true")
        self.offer_pending = True
        log.info("tour %s", how)

    def resolve_offer(self, discard: bool) -> None:
        if not self.offer_pending:
            raise QuizStateError("no tour offer is pending")
        self.offer_pending = False
        if discard:
            self.orchestrator.reset(clear_input=True)
        else:
            self.orchestrator.leave_demo()

    def to_dict(self) -> dict:
        step = self.current_step
        return {
            "running": self.running,
            "index": self.index,
            "total": len(self.steps),
            "active_tab": self.active_tab.value,
            "step": {
                "anchor_id": step.anchor_id,
                "required_tab": step.required_tab.value if step.required_tab else None,
                "content": step.content,
                "placement": step.placement,
            } if step else None,
            "offer": DISCARD_OFFER if self.offer_pending else None,
            "completed": self.tour_completed,
        }
