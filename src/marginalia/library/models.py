"""Data models for books, chapters, engagement targets and comments."""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union


@dataclass
class Book:
    id: str  # SHA256 of file path
    file_path: str
    title: str
    author: str = "Unknown"
    total_chapters: int = 0

    @staticmethod
    def make_id(file_path: str) -> str:
        return hashlib.sha256(file_path.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class ChapterLine:
    number: int  # 1-based position in the raw content
    text: str

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


def number_lines(content: str) -> list[ChapterLine]:
    """Split chapter content into numbered lines.

    Numbers are 1-based positions in the raw split on line breaks. Blank lines
    keep their number so that hiding them never shifts the lines after them.
    """
    raw = content.replace("\r\n", "\n").split("\n")
    return [ChapterLine(number=i, text=text.rstrip()) for i, text in enumerate(raw, 1)]


@dataclass
class Chapter:
    """Parsed chapter content with its line numbering fixed at construction."""

    id: str
    book_id: str
    index: int
    title: str
    content: str = ""
    lines: list[ChapterLine] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.lines = number_lines(self.content)

    @property
    def display_lines(self) -> list[ChapterLine]:
        return [line for line in self.lines if not line.is_blank]

    def line_text(self, number: int) -> str:
        if 1 <= number <= len(self.lines):
            return self.lines[number - 1].text
        return ""

    @staticmethod
    def make_id(book_id: str, index: int) -> str:
        raw = f"{book_id}:{index}"
        return hashlib.sha256(raw.encode()).hexdigest()[:12]


@dataclass
class BookContent:
    """Full parsed book structure."""

    metadata: Book
    chapters: list[Chapter] = field(default_factory=list)
    toc: list[tuple[int, str]] = field(default_factory=list)  # (chapter_index, title)


@dataclass
class ReadingProgress:
    book_id: str
    chapter_index: int = 0
    line_number: Optional[int] = None  # last highlighted line in the chapter
    updated_at: float = field(default_factory=time.time)


# ── Engagement targets ─────────────────────────────


@dataclass(frozen=True)
class BookTarget:
    book_id: str


@dataclass(frozen=True)
class ChapterTarget:
    chapter_id: str


@dataclass(frozen=True)
class LineTarget:
    chapter_id: str
    line_number: int


Target = Union[BookTarget, ChapterTarget, LineTarget]


def target_params(target: Target) -> dict[str, Any]:
    """Query/body fields identifying a target on the wire."""
    if isinstance(target, LineTarget):
        return {"chapter_id": target.chapter_id, "line_number": target.line_number}
    if isinstance(target, ChapterTarget):
        return {"chapter_id": target.chapter_id}
    if isinstance(target, BookTarget):
        return {"book_id": target.book_id}
    raise TypeError(f"Unknown engagement target: {target!r}")


def target_from_params(
    book_id: Optional[str] = None,
    chapter_id: Optional[str] = None,
    line_number: Optional[int] = None,
) -> Target:
    if chapter_id:
        if line_number is not None:
            return LineTarget(chapter_id=chapter_id, line_number=int(line_number))
        return ChapterTarget(chapter_id=chapter_id)
    if book_id:
        if line_number is not None:
            raise ValueError("line_number requires chapter_id")
        return BookTarget(book_id=book_id)
    raise ValueError("book_id or chapter_id is required")


def target_key(target: Target) -> str:
    """Stable string key, used by the service store."""
    if isinstance(target, LineTarget):
        return f"line:{target.chapter_id}:{target.line_number}"
    if isinstance(target, ChapterTarget):
        return f"chapter:{target.chapter_id}"
    if isinstance(target, BookTarget):
        return f"book:{target.book_id}"
    raise TypeError(f"Unknown engagement target: {target!r}")


# ── Likes ──────────────────────────────────────────


@dataclass(frozen=True)
class LikeState:
    total: int = 0
    is_liked: bool = False

    def toggled(self) -> LikeState:
        if self.is_liked:
            return LikeState(total=max(0, self.total - 1), is_liked=False)
        return LikeState(total=self.total + 1, is_liked=True)

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "is_liked": self.is_liked}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LikeState:
        return cls(
            total=max(0, int(data.get("total") or 0)),
            is_liked=bool(data.get("is_liked", False)),
        )


# ── Comments ───────────────────────────────────────


@dataclass
class Comment:
    id: str
    author_name: str
    body: str
    created_at: float
    reader_id: str
    book_id: Optional[str] = None
    chapter_id: Optional[str] = None
    line_number: Optional[int] = None
    parent_id: Optional[str] = None
    admin_reply: Optional[str] = None
    admin_reply_by: Optional[str] = None
    admin_reply_at: Optional[float] = None
    hidden: bool = False
    updated_at: Optional[float] = None

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    @property
    def is_line_comment(self) -> bool:
        return self.line_number is not None

    @property
    def target(self) -> Target:
        return target_from_params(self.book_id, self.chapter_id, self.line_number)

    def is_owned_by(self, reader_id: Optional[str]) -> bool:
        return bool(reader_id) and self.reader_id == reader_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "author_name": self.author_name,
            "body": self.body,
            "created_at": self.created_at,
            "reader_id": self.reader_id,
            "book_id": self.book_id,
            "chapter_id": self.chapter_id,
            "line_number": self.line_number,
            "parent_id": self.parent_id,
            "admin_reply": self.admin_reply,
            "admin_reply_by": self.admin_reply_by,
            "admin_reply_at": self.admin_reply_at,
            "hidden": self.hidden,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Comment:
        line = data.get("line_number")
        parent = data.get("parent_id")
        return cls(
            id=str(data["id"]),
            author_name=data.get("author_name") or "",
            body=data.get("body") or "",
            created_at=float(data.get("created_at") or 0.0),
            reader_id=data.get("reader_id") or "",
            book_id=data.get("book_id"),
            chapter_id=data.get("chapter_id"),
            line_number=int(line) if line is not None else None,
            parent_id=str(parent) if parent is not None else None,
            admin_reply=data.get("admin_reply"),
            admin_reply_by=data.get("admin_reply_by"),
            admin_reply_at=data.get("admin_reply_at"),
            hidden=bool(data.get("hidden", False)),
            updated_at=data.get("updated_at"),
        )
