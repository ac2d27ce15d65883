"""In-memory like and comment store for the counts & comments service."""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from typing import Optional

from marginalia.library.models import (
    BookTarget,
    ChapterTarget,
    Comment,
    LikeState,
    LineTarget,
    Target,
    target_key,
)

MAX_BODY_LENGTH = 500
COMMENT_KINDS = ("line", "chapter", "book")


class CommentNotFound(LookupError):
    pass


class NotCommentOwner(PermissionError):
    pass


class InvalidComment(ValueError):
    pass


class EngagementStore:
    """Like sets and comments guarded by one lock.

    Every like mutation is a read-modify-write of the target's reader set under
    the lock, so concurrent toggles from many readers never lose an update.
    """

    def __init__(self, max_body_length: int = MAX_BODY_LENGTH) -> None:
        self._lock = threading.Lock()
        self._max_body_length = max_body_length
        self._likes: dict[str, set[str]] = {}
        self._comments: dict[str, Comment] = {}
        self._seq: dict[str, int] = {}
        self._next_id = 1

    # ── Likes ──────────────────────────────────────────

    def like_status(self, target: Target, reader_id: Optional[str]) -> LikeState:
        with self._lock:
            readers = self._likes.get(target_key(target), set())
            return LikeState(total=len(readers), is_liked=bool(reader_id) and reader_id in readers)

    def set_like(self, target: Target, reader_id: str, liked: bool) -> LikeState:
        """Idempotent: repeating an action in its own state changes nothing."""
        key = target_key(target)
        with self._lock:
            readers = self._likes.setdefault(key, set())
            if liked:
                readers.add(reader_id)
            else:
                readers.discard(reader_id)
            return LikeState(total=len(readers), is_liked=liked)

    # ── Comments ───────────────────────────────────────

    def list_comments(
        self,
        kind: str,
        reader_id: Optional[str],
        book_id: Optional[str] = None,
        chapter_id: Optional[str] = None,
        line_number: Optional[int] = None,
    ) -> list[Comment]:
        """Newest first; hidden comments are only listed for their author."""
        if kind not in COMMENT_KINDS:
            raise InvalidComment(f"unknown comment type: {kind}")
        with self._lock:
            items = [
                c
                for c in self._comments.values()
                if self._matches(c, kind, book_id, chapter_id, line_number)
                and (not c.hidden or (reader_id and c.reader_id == reader_id))
            ]
            items.sort(key=lambda c: (c.created_at, self._seq[c.id]), reverse=True)
            return [replace(c) for c in items]

    @staticmethod
    def _matches(
        c: Comment,
        kind: str,
        book_id: Optional[str],
        chapter_id: Optional[str],
        line_number: Optional[int],
    ) -> bool:
        if kind == "line":
            if c.chapter_id != chapter_id or c.line_number is None:
                return False
            return line_number is None or c.line_number == line_number
        if kind == "chapter":
            return c.chapter_id == chapter_id and c.line_number is None
        return c.book_id == book_id and c.chapter_id is None

    def get_comment(self, comment_id: str) -> Comment:
        with self._lock:
            return replace(self._get(comment_id))

    def _get(self, comment_id: str) -> Comment:
        comment = self._comments.get(comment_id)
        if comment is None:
            raise CommentNotFound(comment_id)
        return comment

    def _clean_body(self, body: str) -> str:
        text = body.strip()
        if not text:
            raise InvalidComment("comment body is required")
        if len(text) > self._max_body_length:
            raise InvalidComment(
                f"comment body exceeds {self._max_body_length} characters"
            )
        return text

    def add_comment(
        self,
        target: Target,
        author_name: str,
        body: str,
        reader_id: str,
        parent_id: Optional[str] = None,
    ) -> Comment:
        name = author_name.strip()
        if not name:
            raise InvalidComment("author name is required")
        text = self._clean_body(body)

        with self._lock:
            if parent_id is not None:
                parent = self._comments.get(parent_id)
                if parent is None or parent.target != target:
                    raise CommentNotFound(parent_id)

            comment_id = str(self._next_id)
            self._next_id += 1
            comment = Comment(
                id=comment_id,
                author_name=name,
                body=text,
                created_at=time.time(),
                reader_id=reader_id,
                parent_id=parent_id,
            )
            if isinstance(target, LineTarget):
                comment.chapter_id = target.chapter_id
                comment.line_number = target.line_number
            elif isinstance(target, ChapterTarget):
                comment.chapter_id = target.chapter_id
            elif isinstance(target, BookTarget):
                comment.book_id = target.book_id
            else:
                raise TypeError(f"Unknown engagement target: {target!r}")

            self._comments[comment_id] = comment
            self._seq[comment_id] = int(comment_id)
            return replace(comment)

    def update_body(self, comment_id: str, body: str, reader_id: Optional[str]) -> Comment:
        text = self._clean_body(body)
        with self._lock:
            comment = self._get(comment_id)
            if not comment.is_owned_by(reader_id):
                raise NotCommentOwner("only the author can edit this comment")
            if comment.hidden:
                raise NotCommentOwner("hidden comments cannot be edited")
            if text != comment.body:
                comment.body = text
                comment.updated_at = time.time()
            return replace(comment)

    def set_hidden(self, comment_id: str, hidden: bool) -> Comment:
        with self._lock:
            comment = self._get(comment_id)
            comment.hidden = hidden
            comment.updated_at = time.time()
            return replace(comment)

    def set_admin_reply(self, comment_id: str, reply: str, author: str) -> Comment:
        with self._lock:
            comment = self._get(comment_id)
            now = time.time()
            comment.admin_reply = reply.strip() or None
            comment.admin_reply_by = author if comment.admin_reply else None
            comment.admin_reply_at = now if comment.admin_reply else None
            comment.updated_at = now
            return replace(comment)

    def delete_comment(
        self, comment_id: str, reader_id: Optional[str], is_admin: bool = False
    ) -> list[str]:
        """Delete a comment and its replies; returns the removed ids."""
        with self._lock:
            comment = self._get(comment_id)
            if not is_admin:
                if not comment.is_owned_by(reader_id):
                    raise NotCommentOwner("only the author can delete this comment")
                if comment.hidden:
                    raise NotCommentOwner("hidden comments cannot be deleted")

            doomed = [comment_id]
            i = 0
            while i < len(doomed):
                parent = doomed[i]
                doomed.extend(c.id for c in self._comments.values() if c.parent_id == parent)
                i += 1
            for cid in doomed:
                self._comments.pop(cid, None)
                self._seq.pop(cid, None)
            return doomed
