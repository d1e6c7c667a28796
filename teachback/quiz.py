"""Quiz lifecycle: answer, submit, try again."""
from __future__ import annotations

import random

from teachback.errors import QuizStateError
from teachback.models import QAItem, QuizState


class Quiz:
    """One comprehension quiz over a fixed list of ``QAItem``.

    Option order is fixed for the life of a cycle so repeated reads never
    reorder what the user already sees; ``try_again`` starts a new cycle and
    reshuffles every question independently.
    """

    def __init__(
        self,
        items: list[QAItem],
        rng: random.Random | None = None,
        state: QuizState = QuizState.IN_PROGRESS,
        answers: dict[int, str] | None = None,
        options: list[list[str]] | None = None,
    ):
        if not items:
            raise ValueError("a quiz needs at least one question")
        self.items = items
        self.rng = rng or random.Random()
        self.state = state
        self.answers: dict[int, str] = dict(answers or {})
        if options is not None and self._valid_options(options):
            self.options = [list(o) for o in options]
        else:
            self.options = self._shuffle_all()
        for index, choice in self.answers.items():
            if not 0 <= index < len(items):
                raise ValueError(f"answer for unknown question index {index}")
            if choice not in items[index].options:
                raise ValueError(f"{choice!r} is not an option for question {index + 1}")

    def _valid_options(self, options: list[list[str]]) -> bool:
        if len(options) != len(self.items):
            return False
        return all(sorted(o) == sorted(item.options) for o, item in zip(options, self.items))

    def _shuffle_all(self) -> list[list[str]]:
        shuffled = []
        for item in self.items:
            opts = item.options
            self.rng.shuffle(opts)  # Fisher-Yates
            shuffled.append(opts)
        return shuffled

    # ── Commands ──

    def answer(self, index: int, choice: str) -> None:
        if self.state != QuizState.IN_PROGRESS:
            raise QuizStateError(f"cannot answer while quiz is {self.state.value}")
        if not 0 <= index < len(self.items):
            raise ValueError(f"question index out of range: {index}")
        if choice not in self.options[index]:
            raise ValueError(f"{choice!r} is not an option for question {index + 1}")
        self.answers[index] = choice

    def submit(self) -> QuizState:
        if self.state != QuizState.IN_PROGRESS:
            raise QuizStateError(f"cannot submit while quiz is {self.state.value}")
        if not self.can_submit:
            raise QuizStateError("answer every question before submitting")
        self.state = QuizState.MASTERED if not self.wrong_indices else QuizState.SUBMITTED
        return self.state

    def try_again(self) -> None:
        if self.state != QuizState.SUBMITTED:
            raise QuizStateError(f"cannot try again while quiz is {self.state.value}")
        self.answers.clear()
        self.options = self._shuffle_all()
        self.state = QuizState.IN_PROGRESS

    # ── Queries ──

    @property
    def can_submit(self) -> bool:
        return self.state == QuizState.IN_PROGRESS and len(self.answers) == len(self.items)

    def is_correct(self, index: int) -> bool:
        return self.answers.get(index) == self.items[index].correct_answer

    @property
    def wrong_indices(self) -> list[int]:
        return [i for i in range(len(self.items)) if not self.is_correct(i)]

    @property
    def needs_remediation(self) -> bool:
        return self.state == QuizState.SUBMITTED and bool(self.wrong_indices)

    def to_dict(self) -> dict:
        """Display view; rationales are only revealed once submitted."""
        revealed = self.state in (QuizState.SUBMITTED, QuizState.MASTERED)
        questions = []
        for i, item in enumerate(self.items):
            q = {
                "question": item.question,
                "options": list(self.options[i]),
                "answer": self.answers.get(i),
            }
            if revealed:
                q["correct"] = self.is_correct(i)
                q["rationale"] = item.rationale_correct if self.is_correct(i) else item.rationale_incorrect
            questions.append(q)
        return {
            "state": self.state.value,
            "questions": questions,
            "can_submit": self.can_submit,
            "needs_remediation": self.needs_remediation,
        }
