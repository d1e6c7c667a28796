"""Tests for session snapshots and usage counters."""
from __future__ import annotations

import json

import pytest

from teachback.demo_data import DEMO_CLASSIFICATION, SAMPLE_INPUT_TEXT, demo_content
from teachback.errors import CorruptedSession
from teachback.models import QuizState, SessionMetrics
from teachback.persistence import (
    MASTERED_COUNT,
    SESSION_KEY,
    TOTAL_SESSIONS,
    Counters,
    MemoryStore,
    SavedSession,
    SessionRepository,
)


def _saved(**overrides):
    values = dict(
        input_text=SAMPLE_INPUT_TEXT,
        classification=DEMO_CLASSIFICATION,
        content=demo_content(),
        quiz_state=QuizState.SUBMITTED,
        answers={0: "Twice a day", 2: "In 2 weeks"},
        metrics=SessionMetrics(attempts=2, reading_grade_after=7),
        elapsed_seconds=95,
    )
    values.update(overrides)
    return SavedSession(**values)


class TestSessionRepository:
    def test_save_and_load(self, store):
        repo = SessionRepository(store)
        repo.save(_saved())
        loaded = repo.load()
        assert loaded == _saved()
        assert repo.exists()

    def test_answers_keys_stay_ints(self, store):
        repo = SessionRepository(store)
        repo.save(_saved())
        assert set(repo.load().answers) == {0, 2}

    def test_image_round_trip(self, store):
        repo = SessionRepository(store)
        repo.save(_saved(input_text="", image=b"\x00\x01binary", image_mime_type="image/png"))
        loaded = repo.load()
        assert loaded.image == b"\x00\x01binary"
        assert loaded.image_mime_type == "image/png"

    def test_uses_versioned_key(self, store):
        SessionRepository(store).save(_saved())
        assert SESSION_KEY.endswith("_v2")
        assert json.loads(store.get(SESSION_KEY))["quiz_state"] == "SUBMITTED"

    def test_empty_slot(self, store):
        assert SessionRepository(store).load() is None

    def test_corrupted_record_deleted(self, store):
        store.set(SESSION_KEY, "][")
        repo = SessionRepository(store)
        with pytest.raises(CorruptedSession):
            repo.load()
        assert not repo.exists()

    def test_unknown_quiz_state_is_corrupted(self, store):
        repo = SessionRepository(store)
        repo.save(_saved())
        data = json.loads(store.get(SESSION_KEY))
        data["quiz_state"] = "HALF_DONE"
        store.set(SESSION_KEY, json.dumps(data))
        with pytest.raises(CorruptedSession):
            repo.load()

    def test_clear(self, store):
        repo = SessionRepository(store)
        repo.save(_saved())
        repo.clear()
        assert repo.load() is None

    def test_sqlite_store(self, tmp_db):
        repo = SessionRepository(tmp_db)
        repo.save(_saved())
        assert repo.load().elapsed_seconds == 95


class TestCounters:
    def test_increment(self, store):
        counters = Counters(store)
        assert counters.get(TOTAL_SESSIONS) == 0
        assert counters.increment(TOTAL_SESSIONS) == 1
        assert counters.increment(TOTAL_SESSIONS) == 2
        assert store.get(TOTAL_SESSIONS) == "2"

    def test_garbage_reads_as_zero(self):
        counters = Counters(MemoryStore({MASTERED_COUNT: "lots"}))
        assert counters.get(MASTERED_COUNT) == 0
        assert counters.increment(MASTERED_COUNT) == 1

    def test_snapshot(self, store):
        counters = Counters(store)
        counters.increment(MASTERED_COUNT)
        assert counters.snapshot() == {"total_sessions": 0, "mastered": 1, "overrides": 0, "unknown": 0}
