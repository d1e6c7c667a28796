from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS audio_cache (
    text_hash TEXT PRIMARY KEY,
    file_path TEXT NOT NULL,
    tts_provider TEXT,
    language TEXT,
    created_at TEXT NOT NULL
);
"""


class Database:
    """Local SQLite store: a string key-value table plus the speech cache.

    The ``kv`` table satisfies the ``PersistenceStore`` protocol (``get`` /
    ``set`` / ``delete``), so a ``Database`` can back sessions, the glossary,
    counters and the tour flag directly.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ── Key-value ─────────────────────────────────────────────────────────

    def get(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self.conn.execute(
            "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, now),
        )
        self.conn.commit()

    def delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.conn.commit()

    # ── Audio cache ───────────────────────────────────────────────────────

    def get_audio_cache(self, text_hash: str) -> str | None:
        row = self.conn.execute(
            "SELECT file_path FROM audio_cache WHERE text_hash = ?",
            (text_hash,),
        ).fetchone()
        return row["file_path"] if row else None

    def set_audio_cache(
        self, text_hash: str, file_path: str, tts_provider: str, language: str
    ) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self.conn.execute(
            "INSERT OR REPLACE INTO audio_cache "
            "(text_hash, file_path, tts_provider, language, created_at) VALUES (?, ?, ?, ?, ?)",
            (text_hash, file_path, tts_provider, language, now),
        )
        self.conn.commit()

    def delete_audio_cache(self, text_hash: str) -> None:
        self.conn.execute("DELETE FROM audio_cache WHERE text_hash = ?", (text_hash,))
        self.conn.commit()

    def audio_cache_count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM audio_cache").fetchone()[0]
