"""Tests for the command line entry point and resuming."""

from __future__ import annotations

from marginalia.app import _build_parser, resume_position
from marginalia.engagement.deeplink import OpenCommentRequest
from marginalia.library.database import Database
from marginalia.library.models import Book, BookContent, Chapter, ReadingProgress


def _content(chapters: int = 3) -> BookContent:
    book = Book(id="b1", file_path="/b.txt", title="B")
    return BookContent(
        metadata=book,
        chapters=[
            Chapter(id=f"c{i}", book_id="b1", index=i, title=f"Ch {i}", content="a\nb")
            for i in range(chapters)
        ],
    )


class TestCommandLine:
    def test_defaults(self):
        args = _build_parser().parse_args(["book.txt"])
        assert args.file == "book.txt"
        assert args.chapter is None
        assert args.comment is None

    def test_comment_link(self):
        args = _build_parser().parse_args(["book.txt", "--comment", "42", "--line", "12"])
        request = OpenCommentRequest.from_query({"commentId": args.comment, "line": args.line})
        assert request == OpenCommentRequest("42", 12)


class TestResumePosition:
    def test_starts_at_beginning_without_progress(self, db: Database):
        assert resume_position(db, _content(), None) == (0, None)

    def test_resumes_saved_chapter_and_line(self, db: Database):
        db.save_progress(ReadingProgress(book_id="b1", chapter_index=2, line_number=2))
        assert resume_position(db, _content(), None) == (2, 2)

    def test_explicit_chapter_wins(self, db: Database):
        db.save_progress(ReadingProgress(book_id="b1", chapter_index=2, line_number=2))
        assert resume_position(db, _content(), 1) == (1, None)

    def test_clamped_when_book_shrank(self, db: Database):
        db.save_progress(ReadingProgress(book_id="b1", chapter_index=9, line_number=5))
        assert resume_position(db, _content(3), None) == (2, None)

    def test_without_storage(self):
        assert resume_position(None, _content(), None) == (0, None)
