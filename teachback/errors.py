"""Exception taxonomy shared by the pipeline, persistence and audio layers."""
from __future__ import annotations


class TeachBackError(Exception):
    """Base class for user-reportable failures."""


class GenerationFailure(TeachBackError):
    """The AI backend failed to produce a valid result after the retry."""


class InputTooShort(TeachBackError):
    def __init__(self, length: int, minimum: int):
        super().__init__(
            f"Please enter at least {minimum} characters of text (got {length})."
        )
        self.length = length
        self.minimum = minimum


class CorruptedSession(TeachBackError):
    """A persisted session record could not be parsed or had the wrong shape."""


class DeviceUnavailable(TeachBackError):
    """Microphone or audio output could not be opened."""


class UnsupportedPlatform(TeachBackError):
    """The audio stack needed for a feature is not installed on this machine."""


class QuizStateError(ValueError):
    """A command was issued in a state that does not accept it."""
