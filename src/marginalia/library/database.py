"""SQLite database for the reader identity, reading progress and the like cache."""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Optional

from .models import LikeState, ReadingProgress

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reader_identity (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS reading_progress (
    book_id TEXT PRIMARY KEY,
    chapter_index INTEGER DEFAULT 0,
    line_number INTEGER,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS line_like_cache (
    chapter_id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""

_READER_ID_KEY = "reader_id"


class Database:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ── Reader Identity ────────────────────────────────

    def get_reader_id(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM reader_identity WHERE key = ?", (_READER_ID_KEY,)
        ).fetchone()
        return row["value"] if row else None

    def save_reader_id(self, reader_id: str) -> None:
        # Never overwrite: the first identity written wins.
        self._conn.execute(
            """INSERT OR IGNORE INTO reader_identity (key, value, created_at)
               VALUES (?, ?, ?)""",
            (_READER_ID_KEY, reader_id, time.time()),
        )
        self._conn.commit()

    # ── Reading Progress ───────────────────────────────

    def save_progress(self, progress: ReadingProgress) -> None:
        self._conn.execute(
            """INSERT OR REPLACE INTO reading_progress
               (book_id, chapter_index, line_number, updated_at)
               VALUES (?, ?, ?, ?)""",
            (
                progress.book_id,
                progress.chapter_index,
                progress.line_number,
                progress.updated_at,
            ),
        )
        self._conn.commit()

    def get_progress(self, book_id: str) -> Optional[ReadingProgress]:
        row = self._conn.execute(
            "SELECT * FROM reading_progress WHERE book_id = ?",
            (book_id,),
        ).fetchone()
        if not row:
            return None
        return ReadingProgress(
            book_id=row["book_id"],
            chapter_index=row["chapter_index"],
            line_number=row["line_number"],
            updated_at=row["updated_at"],
        )

    # ── Line Like Cache ────────────────────────────────

    def load_line_likes(self, chapter_id: str) -> dict[int, LikeState]:
        row = self._conn.execute(
            "SELECT payload FROM line_like_cache WHERE chapter_id = ?",
            (chapter_id,),
        ).fetchone()
        if not row:
            return {}
        try:
            raw = json.loads(row["payload"])
        except ValueError:
            return {}
        result: dict[int, LikeState] = {}
        for key, value in raw.items():
            try:
                result[int(key)] = LikeState.from_dict(value)
            except (TypeError, ValueError, AttributeError):
                continue
        return result

    def save_line_likes(self, chapter_id: str, likes: dict[int, LikeState]) -> None:
        payload = json.dumps(
            {str(line): state.to_dict() for line, state in sorted(likes.items())}
        )
        self._conn.execute(
            """INSERT OR REPLACE INTO line_like_cache (chapter_id, payload, updated_at)
               VALUES (?, ?, ?)""",
            (chapter_id, payload, time.time()),
        )
        self._conn.commit()

    def clear_line_likes(self, chapter_id: str) -> None:
        self._conn.execute(
            "DELETE FROM line_like_cache WHERE chapter_id = ?", (chapter_id,)
        )
        self._conn.commit()
