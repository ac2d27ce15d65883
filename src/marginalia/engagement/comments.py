"""Line and chapter comment threads with replies and ownership rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from marginalia.engagement.client import EngagementClient, ServiceError
from marginalia.library.models import ChapterTarget, Comment, LineTarget, Target

log = logging.getLogger(__name__)

MAX_BODY_LENGTH = 500

ConfirmCallback = Callable[[Comment], Awaitable[bool]]


@dataclass
class CommentResult:
    comment: Optional[Comment] = None
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


def newest_first(comments: Iterable[Comment]) -> list[Comment]:
    # sorted() is stable with reverse=True, so equal timestamps keep server order.
    return sorted(comments, key=lambda c: c.created_at, reverse=True)


class CommentThreadEngine:
    """Holds fetched comments per target and applies confirmed mutations.

    Replies live in the same flat list as their parent, newest first. Nothing
    is inserted, changed or removed locally until the service confirms it.
    """

    def __init__(
        self,
        client: EngagementClient,
        reader_id: Callable[[], Optional[str]],
        max_body_length: int = MAX_BODY_LENGTH,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._client = client
        self._reader_id = reader_id
        self._max_body_length = max_body_length
        self._on_error = on_error
        self._threads: dict[Target, list[Comment]] = {}
        self._fetched: set[Target] = set()
        self.show_mine_only = False

    @property
    def max_body_length(self) -> int:
        return self._max_body_length

    def _report(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)

    # ── Reads ──────────────────────────────────────────

    def has_fetched(self, target: Target) -> bool:
        return target in self._fetched

    def comments(self, target: Target) -> list[Comment]:
        return list(self._threads.get(target, []))

    def visible(self, target: Target) -> list[Comment]:
        """Comments to render, after the "my comments only" filter."""
        items = self.comments(target)
        if not self.show_mine_only:
            return items
        reader_id = self._reader_id()
        return [c for c in items if c.is_owned_by(reader_id)]

    def comment_count(self, target: Target) -> int:
        return len(self.visible(target))

    def replies(self, comment_id: str) -> list[Comment]:
        parent = self.find(comment_id)
        if parent is None:
            return []
        return [c for c in self.comments(parent.target) if c.parent_id == comment_id]

    def find(self, comment_id: str) -> Optional[Comment]:
        for items in self._threads.values():
            for comment in items:
                if comment.id == comment_id:
                    return comment
        return None

    async def list_comments(
        self, chapter_id: str, line_number: Optional[int] = None, refresh: bool = False
    ) -> list[Comment]:
        target: Target
        if line_number is None:
            target = ChapterTarget(chapter_id=chapter_id)
        else:
            target = LineTarget(chapter_id=chapter_id, line_number=line_number)
        return await self.fetch(target, refresh=refresh)

    async def fetch(self, target: Target, refresh: bool = False) -> list[Comment]:
        if not refresh and target in self._fetched:
            return self.comments(target)
        try:
            items = await self._client.list_comments(target, self._reader_id())
        except ServiceError as e:
            log.warning("Comments unavailable for %s: %s", target, e)
            return self.comments(target)
        self._threads[target] = newest_first(items)
        self._fetched.add(target)
        return self.comments(target)

    async def load_line_comments(self, chapter_id: str) -> dict[int, list[Comment]]:
        """Fetch every line comment of a chapter in one call, grouped by line."""
        chapter = ChapterTarget(chapter_id=chapter_id)
        try:
            items = await self._client.list_comments(
                chapter, self._reader_id(), all_lines=True
            )
        except ServiceError as e:
            log.warning("Line comments unavailable for %s: %s", chapter_id, e)
            return {}

        grouped: dict[int, list[Comment]] = {}
        for comment in items:
            if comment.line_number is not None:
                grouped.setdefault(comment.line_number, []).append(comment)

        for target in [t for t in self._threads if isinstance(t, LineTarget)]:
            if target.chapter_id == chapter_id:
                del self._threads[target]
                self._fetched.discard(target)
        for line_number, line_items in grouped.items():
            target = LineTarget(chapter_id=chapter_id, line_number=line_number)
            self._threads[target] = newest_first(line_items)
            self._fetched.add(target)
        return {line: self.comments(LineTarget(chapter_id, line)) for line in grouped}

    # ── Writes ─────────────────────────────────────────

    def validate_body(self, body: str) -> Optional[str]:
        text = body.strip()
        if not text:
            return "Comment cannot be empty."
        if len(text) > self._max_body_length:
            return f"Comment is too long ({len(text)}/{self._max_body_length} characters)."
        return None

    def validate(self, author_name: str, body: str) -> Optional[str]:
        if not author_name.strip():
            return "Please enter your name."
        return self.validate_body(body)

    async def add_comment(
        self,
        target: Target,
        author_name: str,
        body: str,
        parent_id: Optional[str] = None,
    ) -> CommentResult:
        error = self.validate(author_name, body)
        if error:
            return CommentResult(error=error)
        reader_id = self._reader_id()
        if not reader_id:
            return CommentResult(error="Reader identity is not ready yet.")
        if parent_id is not None:
            parent = self.find(parent_id)
            if parent is None or parent.target != target:
                return CommentResult(error="The comment you replied to no longer exists.")

        try:
            comment = await self._client.create_comment(
                target, author_name.strip(), body.strip(), reader_id, parent_id
            )
        except ServiceError as e:
            log.warning("Adding comment to %s failed: %s", target, e)
            message = f"Could not post comment: {e}"
            self._report(message)
            return CommentResult(error=message)

        self._threads.setdefault(target, []).insert(0, comment)
        return CommentResult(comment=comment)

    async def add_reply(self, parent_id: str, author_name: str, body: str) -> CommentResult:
        parent = self.find(parent_id)
        if parent is None:
            return CommentResult(error="The comment you replied to no longer exists.")
        return await self.add_comment(parent.target, author_name, body, parent_id=parent_id)

    def _check_owner(self, comment: Comment, verb: str) -> Optional[str]:
        if not comment.is_owned_by(self._reader_id()):
            return f"You can only {verb} your own comments."
        if comment.hidden:
            return "This comment was hidden by a moderator and can no longer be changed."
        return None

    async def edit_comment(self, comment_id: str, new_body: str) -> CommentResult:
        comment = self.find(comment_id)
        if comment is None:
            return CommentResult(error="Comment not found.")
        error = self._check_owner(comment, "edit") or self.validate_body(new_body)
        if error:
            return CommentResult(comment=comment, error=error)
        body = new_body.strip()
        if body == comment.body:
            return CommentResult(comment=comment)

        try:
            updated = await self._client.update_comment(
                comment_id, body, self._reader_id() or ""
            )
        except ServiceError as e:
            log.warning("Editing comment %s failed: %s", comment_id, e)
            message = f"Could not edit comment: {e}"
            self._report(message)
            return CommentResult(comment=comment, error=message)

        # The thread may have been refreshed or pruned while the edit was in flight.
        items = self._threads.get(comment.target, [])
        for i, current in enumerate(items):
            if current.id == comment_id:
                items[i] = updated
                break
        return CommentResult(comment=updated)

    async def delete_comment(self, comment_id: str, confirm: ConfirmCallback) -> CommentResult:
        """Delete one of the reader's comments once ``confirm`` approves it."""
        comment = self.find(comment_id)
        if comment is None:
            return CommentResult(error="Comment not found.")
        error = self._check_owner(comment, "delete")
        if error:
            return CommentResult(comment=comment, error=error)
        if not await confirm(comment):
            return CommentResult(comment=comment, cancelled=True)

        try:
            await self._client.delete_comment(comment_id, self._reader_id() or "")
        except ServiceError as e:
            log.warning("Deleting comment %s failed: %s", comment_id, e)
            message = f"Could not delete comment: {e}"
            self._report(message)
            return CommentResult(comment=comment, error=message)

        self._remove_with_replies(comment)
        return CommentResult(comment=comment)

    def _remove_with_replies(self, comment: Comment) -> None:
        items = self._threads.get(comment.target, [])
        doomed = {comment.id}
        grew = True
        while grew:
            grew = False
            for c in items:
                if c.parent_id in doomed and c.id not in doomed:
                    doomed.add(c.id)
                    grew = True
        self._threads[comment.target] = [c for c in items if c.id not in doomed]
