"""Tests for the SQLite key-value store and speech cache."""
from __future__ import annotations

from teachback.db import Database


class TestKeyValue:
    def test_get_missing(self, tmp_db):
        assert tmp_db.get("nope") is None

    def test_set_and_get(self, tmp_db):
        tmp_db.set("k", "v1")
        tmp_db.set("k", "v2")
        assert tmp_db.get("k") == "v2"

    def test_delete(self, tmp_db):
        tmp_db.set("k", "v")
        tmp_db.delete("k")
        tmp_db.delete("k")
        assert tmp_db.get("k") is None

    def test_survives_reopen(self, tmp_path):
        db = Database(tmp_path / "kv.db")
        db.set("teachback_total_sessions", "3")
        db.close()
        db = Database(tmp_path / "kv.db")
        assert db.get("teachback_total_sessions") == "3"
        db.close()


class TestAudioCache:
    def test_set_and_get(self, tmp_db):
        tmp_db.set_audio_cache("abc123", "/tmp/abc123.wav", "gemini-tts", "es")
        assert tmp_db.get_audio_cache("abc123") == "/tmp/abc123.wav"
        assert tmp_db.audio_cache_count() == 1

    def test_missing(self, tmp_db):
        assert tmp_db.get_audio_cache("missing") is None

    def test_delete(self, tmp_db):
        tmp_db.set_audio_cache("abc123", "/tmp/abc123.wav", "gemini-tts", "en")
        tmp_db.delete_audio_cache("abc123")
        assert tmp_db.audio_cache_count() == 0
