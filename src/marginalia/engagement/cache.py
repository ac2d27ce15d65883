"""Durable per-chapter cache of line like counts."""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from marginalia.library.database import Database
from marginalia.library.models import LikeState

log = logging.getLogger(__name__)


class EngagementCache:
    """Maps ``chapter_id -> {line_number: LikeState}``.

    One instance belongs to one chapter view. Chapter maps are loaded from the
    database on first access and written back whole on every ``put``. The cache
    is advisory: storage errors are logged and the in-memory map keeps working.
    """

    def __init__(self, db: Optional[Database]) -> None:
        self._db = db
        self._chapters: dict[str, dict[int, LikeState]] = {}

    def _chapter(self, chapter_id: str) -> dict[int, LikeState]:
        likes = self._chapters.get(chapter_id)
        if likes is None:
            likes = {}
            if self._db is not None:
                try:
                    likes = self._db.load_line_likes(chapter_id)
                except sqlite3.Error as e:
                    log.warning("Could not load like cache for %s: %s", chapter_id, e)
            self._chapters[chapter_id] = likes
        return likes

    def get(self, chapter_id: str, line_number: int) -> Optional[LikeState]:
        return self._chapter(chapter_id).get(line_number)

    def has_loaded(self, chapter_id: str, line_number: int) -> bool:
        return line_number in self._chapter(chapter_id)

    def put(self, chapter_id: str, line_number: int, state: LikeState) -> None:
        likes = self._chapter(chapter_id)
        likes[line_number] = state
        if self._db is None:
            return
        try:
            self._db.save_line_likes(chapter_id, likes)
        except sqlite3.Error as e:
            log.warning("Could not persist like cache for %s: %s", chapter_id, e)

    def entries(self, chapter_id: str) -> dict[int, LikeState]:
        return dict(self._chapter(chapter_id))

    def forget(self, chapter_id: str) -> None:
        """Drop the in-memory map; the persisted copy stays."""
        self._chapters.pop(chapter_id, None)

    def close(self) -> None:
        self._chapters.clear()
