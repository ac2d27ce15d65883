"""Side panel bound to at most one selected line."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from marginalia.engagement.comments import CommentThreadEngine
from marginalia.library.models import Comment, LineTarget

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PanelState:
    line_number: Optional[int] = None  # None means closed

    @property
    def is_open(self) -> bool:
        return self.line_number is not None


CLOSED = PanelState()


class AnnotationPanelController:
    """``Closed`` / ``OpenForLine(n)`` state machine for the comment panel.

    Opening a line fetches its comments once per navigation; reopening the
    same line reuses what was fetched. Concurrent opens of one line share a
    single in-flight fetch.
    """

    def __init__(
        self,
        comments: CommentThreadEngine,
        chapter_id: str,
        on_change: Optional[Callable[[PanelState], None]] = None,
    ) -> None:
        self._comments = comments
        self._chapter_id = chapter_id
        self._on_change = on_change
        self._state = CLOSED
        self._fetched_lines: set[int] = set()
        self._inflight: dict[int, asyncio.Task[list[Comment]]] = {}

    @property
    def state(self) -> PanelState:
        return self._state

    @property
    def chapter_id(self) -> str:
        return self._chapter_id

    @property
    def active_line(self) -> Optional[int]:
        return self._state.line_number

    def _set(self, state: PanelState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_change:
            self._on_change(state)

    async def open_line(self, line_number: int, refresh: bool = False) -> list[Comment]:
        """Enter ``OpenForLine(line_number)`` and make sure its comments are loaded."""
        self._set(PanelState(line_number=line_number))
        target = LineTarget(chapter_id=self._chapter_id, line_number=line_number)
        if line_number in self._fetched_lines and not refresh:
            return self._comments.visible(target)

        task = self._inflight.get(line_number)
        if task is None:
            task = asyncio.ensure_future(self._comments.fetch(target, refresh=refresh))
            self._inflight[line_number] = task
            task.add_done_callback(lambda _t: self._inflight.pop(line_number, None))
        await task
        if self._comments.has_fetched(target):
            self._fetched_lines.add(line_number)
        return self._comments.visible(target)

    async def toggle_line(self, line_number: int) -> list[Comment]:
        """Clicking the open line's own affordance closes the panel."""
        if self._state.line_number == line_number:
            self.close()
            return []
        return await self.open_line(line_number)

    def close(self) -> None:
        self._set(CLOSED)

    def click_backdrop(self) -> None:
        self.close()

    def mark_fetched(self, line_numbers: set[int]) -> None:
        self._fetched_lines.update(line_numbers)

    def reset_navigation(self, chapter_id: Optional[str] = None) -> None:
        """Forget per-line fetch tracking, e.g. after moving to another chapter."""
        if chapter_id is not None:
            self._chapter_id = chapter_id
        self._fetched_lines.clear()
        self.close()
