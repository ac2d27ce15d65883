"""Open a specific comment from a link or a same-origin window message."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from marginalia.engagement.comments import CommentThreadEngine
from marginalia.engagement.panel import AnnotationPanelController
from marginalia.library.models import ChapterTarget, LineTarget, Target

log = logging.getLogger(__name__)

OPEN_COMMENT = "OPEN_COMMENT"


def _parse_line(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        line = int(value)
    except (TypeError, ValueError):
        return None
    return line if line >= 1 else None


@dataclass(frozen=True)
class OpenCommentRequest:
    comment_id: str
    line_number: Optional[int] = None

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> Optional[OpenCommentRequest]:
        """Build a request from the ``commentId`` and ``line`` link parameters."""
        comment_id = params.get("commentId")
        if not comment_id:
            return None
        return cls(comment_id=str(comment_id), line_number=_parse_line(params.get("line")))

    @classmethod
    def from_message(cls, data: Any) -> Optional[OpenCommentRequest]:
        if not isinstance(data, Mapping) or data.get("type") != OPEN_COMMENT:
            return None
        comment_id = data.get("commentId")
        if not comment_id:
            return None
        return cls(
            comment_id=str(comment_id), line_number=_parse_line(data.get("lineNumber"))
        )


@dataclass(frozen=True)
class WindowMessage:
    origin: str
    data: Any = field(default=None)


class DeepLinkResolver:
    """Drives the annotation panel to a linked comment and highlights it.

    Resolution never raises: a comment that cannot be found after one retry
    is silently skipped.
    """

    def __init__(
        self,
        panel: AnnotationPanelController,
        comments: CommentThreadEngine,
        origin: str,
        highlight_seconds: float = 3.0,
        on_highlight: Optional[Callable[[Optional[str]], None]] = None,
    ) -> None:
        self._panel = panel
        self._comments = comments
        self._origin = origin.rstrip("/")
        self._highlight_seconds = highlight_seconds
        self._on_highlight = on_highlight
        self._highlighted: Optional[str] = None
        self._expiry: Optional[asyncio.TimerHandle] = None

    @property
    def highlighted(self) -> Optional[str]:
        return self._highlighted

    async def handle_query(self, params: Mapping[str, Any]) -> bool:
        request = OpenCommentRequest.from_query(params)
        if request is None:
            return False
        return await self.resolve(request)

    async def handle_message(self, message: WindowMessage) -> bool:
        """Inbound contract for a host that embeds the reading view.

        The terminal app itself only uses links (``handle_query`` and
        ``resolve``); a host window forwards its ``OPEN_COMMENT`` messages here.
        Messages from any origin other than the configured site are dropped.
        """
        if message.origin.rstrip("/") != self._origin:
            log.debug("Ignoring message from foreign origin %s", message.origin)
            return False
        request = OpenCommentRequest.from_message(message.data)
        if request is None:
            return False
        return await self.resolve(request)

    async def resolve(self, request: OpenCommentRequest) -> bool:
        try:
            return await self._resolve(request)
        except Exception:
            log.exception("Could not open comment %s", request.comment_id)
            return False

    async def _resolve(self, request: OpenCommentRequest) -> bool:
        chapter_id = self._panel.chapter_id
        target: Target
        if request.line_number is not None:
            target = LineTarget(chapter_id=chapter_id, line_number=request.line_number)
            await self._panel.open_line(request.line_number)
        else:
            target = ChapterTarget(chapter_id=chapter_id)
            await self._comments.fetch(target)

        if not self._contains(target, request.comment_id):
            await self._comments.fetch(target, refresh=True)
            if not self._contains(target, request.comment_id):
                log.info("Linked comment %s not found", request.comment_id)
                return False

        self._highlight(request.comment_id)
        return True

    def _contains(self, target: Target, comment_id: str) -> bool:
        return any(c.id == comment_id for c in self._comments.comments(target))

    def _highlight(self, comment_id: str) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
        self._highlighted = comment_id
        if self._on_highlight:
            self._on_highlight(comment_id)
        loop = asyncio.get_running_loop()
        self._expiry = loop.call_later(self._highlight_seconds, self._expire, comment_id)

    def _expire(self, comment_id: str) -> None:
        if self._highlighted != comment_id:
            return
        self._highlighted = None
        self._expiry = None
        if self._on_highlight:
            self._on_highlight(None)

    def cancel(self) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
            self._expiry = None
        self._highlighted = None
