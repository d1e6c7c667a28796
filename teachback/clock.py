"""Elapsed-time tracking as a wall-clock delta from a recorded start."""
from __future__ import annotations

import time
from collections.abc import Callable


def format_time(total_seconds: int) -> str:
    minutes, seconds = divmod(int(total_seconds), 60)
    return f"{minutes:02d}:{seconds:02d}"


class ElapsedClock:
    """Pausable stopwatch.

    Elapsed time is derived from ``now() - start``, never accumulated tick by
    tick, so pause/resume cycles do not drift.
    """

    def __init__(self, now: Callable[[], float] = time.time):
        self._now = now
        self._started_at: float | None = None
        self._frozen = 0

    @property
    def running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> int:
        if self._started_at is None:
            return self._frozen
        return int(self._now() - self._started_at)

    @property
    def formatted(self) -> str:
        return format_time(self.elapsed)

    def start(self, resume_from: int = 0) -> None:
        self._started_at = self._now() - resume_from
        self._frozen = resume_from

    def stop(self) -> int:
        self._frozen = self.elapsed
        self._started_at = None
        return self._frozen

    def reset(self) -> None:
        self._started_at = None
        self._frozen = 0

    def set_elapsed(self, seconds: int) -> None:
        """Set the baseline without changing whether the clock runs."""
        if self._started_at is not None:
            self._started_at = self._now() - seconds
        self._frozen = seconds
