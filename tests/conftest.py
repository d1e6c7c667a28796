"""Shared test fixtures."""
from __future__ import annotations

import copy
import json
import random
from pathlib import Path

import pytest

from teachback.clock import ElapsedClock
from teachback.config import Settings
from teachback.db import Database
from teachback.gateway import AIGateway
from teachback.orchestrator import SessionOrchestrator
from teachback.persistence import MemoryStore


class FakeLLM:
    """Scripted LLM that avoids AsyncMock's `name` attribute issue.

    Each call consumes the next response; the last one repeats.  A response
    that is an Exception instance is raised instead of returned.
    """

    def __init__(self, responses=None, tokens=None):
        self._responses = list(responses or [])
        self._tokens = tokens or []
        self._call_count = 0
        self.calls: list[dict] = []

    async def generate(self, prompt, temperature=0.7, *, system=None, attachment=None, schema=None):
        self.calls.append({
            "prompt": prompt,
            "temperature": temperature,
            "system": system,
            "attachment": attachment,
            "schema": schema,
        })
        idx = min(self._call_count, len(self._responses) - 1)
        self._call_count += 1
        response = self._responses[idx]
        if isinstance(response, Exception):
            raise response
        return response

    async def generate_stream(self, prompt, temperature=0.7, system=None):
        self.calls.append({"prompt": prompt, "temperature": temperature, "system": system})
        self._call_count += 1
        for token in self._tokens:
            if isinstance(token, Exception):
                raise token
            yield token

    def name(self) -> str:
        return "fake-llm"

    @property
    def call_count(self):
        return self._call_count


class FakeTTS:
    """Fake TTS writing a few bytes instead of real audio."""

    extension = "mp3"

    def __init__(self, error: Exception | None = None):
        self._error = error
        self.synthesize_called = 0
        self.languages: list[str] = []

    async def synthesize(self, text: str, output_path: Path, language: str = "en") -> Path:
        self.synthesize_called += 1
        self.languages.append(language)
        if self._error:
            raise self._error
        output_path.write_bytes(b"fake audio data")
        return output_path

    def name(self) -> str:
        return "fake-tts"


class FakeClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


CLASSIFICATION_REPLY = {
    "context": "prescription",
    "confidence": 0.92,
    "top_k": [{"label": "discharge", "score": 0.05}],
    "unknown_reasons": [],
}

TEACHBACK_REPLY = {
    "simplified_text": "Take 1 pill in the morning and 1 pill at night, with food.",
    "reading_grade": 6,
    "qa": [
        {
            "q": "How many times a day do you take this medicine?",
            "a_correct": "Two times",
            "a_distractors": ["One time", "Only when I feel sick"],
            "rationale_correct": "The label says twice daily.",
            "rationale_incorrect": "It has to be taken every day, twice.",
            "concept_tag": "frequency",
        },
        {
            "q": "Should you take it with food?",
            "a_correct": "Yes, with food",
            "a_distractors": ["No, on an empty stomach", "It does not matter"],
            "rationale_correct": "Food protects your stomach.",
            "rationale_incorrect": "The label says to take it with food.",
        },
        {
            "q": "What do you do if you miss a dose?",
            "a_correct": "Take it when you remember, unless the next dose is soon",
            "a_distractors": ["Take two pills next time", "Stop taking the medicine"],
            "rationale_correct": "Never double up.",
            "rationale_incorrect": "Doubling up or stopping can be unsafe.",
        },
    ],
    "remediation": {
        "if_wrong": "Let's go over how and when to take this medicine.",
        "examples": ["Morning pill with breakfast, evening pill with dinner."],
    },
    "safety_flags": {
        "urgent_contact": False,
        "contraindication_mentioned": False,
        "red_flags": [],
    },
    "domain": {
        "prescription": {
            "dose": "500 mg",
            "route": "by mouth",
            "frequency": "twice daily",
            "timing": "with meals",
            "missed_dose_instructions": "Take when remembered unless next dose is soon.",
            "common_side_effects": ["upset stomach"],
            "interaction_warnings": [],
        },
        "lab": {"test": "should be dropped"},
    },
}

SAMPLE_TEXT = "Take one tablet twice daily with food. Do not double up if you miss a dose."


@pytest.fixture
def tmp_db(tmp_path):
    """Create a fresh temporary database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def classification_reply():
    return copy.deepcopy(CLASSIFICATION_REPLY)


@pytest.fixture
def teachback_reply():
    return copy.deepcopy(TEACHBACK_REPLY)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_orchestrator(store, fake_clock):
    """Build an orchestrator around a FakeLLM scripted with *responses*."""

    def _make(responses, settings=None):
        llm = FakeLLM([r if isinstance(r, (str, Exception)) else json.dumps(r) for r in responses])
        orchestrator = SessionOrchestrator(
            AIGateway(llm, timeout_seconds=5),
            store,
            settings or Settings(),
            clock=ElapsedClock(now=fake_clock),
            rng=random.Random(42),
        )
        return orchestrator, llm

    return _make
