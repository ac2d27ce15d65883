"""Marginalia - line-level likes and comments for a chapter reader."""

from __future__ import annotations

import argparse
import logging
import sqlite3
from pathlib import Path

from textual.app import App

from marginalia.config import AppConfig, load_config
from marginalia.engagement.client import EngagementClient
from marginalia.engagement.deeplink import OpenCommentRequest
from marginalia.engagement.identity import IdentityProvider
from marginalia.library.database import Database
from marginalia.library.models import BookContent
from marginalia.ui.screens.chapter_screen import ChapterScreen
from marginalia.ui.themes import APP_CSS

log = logging.getLogger(__name__)


class MarginaliaApp(App):
    """A chapter reader with per-line likes and comment threads."""

    TITLE = "Marginalia"
    CSS = APP_CSS

    def __init__(
        self,
        config: AppConfig | None = None,
        open_file: str | None = None,
        chapter: int | None = None,
        deep_link: OpenCommentRequest | None = None,
    ) -> None:
        super().__init__()
        self.config = config or load_config()
        try:
            self.db: Database | None = Database(self.config.db_path)
        except sqlite3.Error:
            log.exception("Local storage unavailable; continuing without it")
            self.db = None
        self.identity = IdentityProvider(self.db)
        self.client = EngagementClient(self.config)
        self.reader_id: str | None = None
        self._open_file = open_file
        self._chapter = chapter
        self._deep_link = deep_link

    def on_mount(self) -> None:
        self.reader_id = self.identity.get_or_create_reader_id()
        if not self._open_file:
            self.notify("Usage: marginalia FILE.txt", severity="error")
            self.exit()
            return
        self._open(self._open_file)

    def _open(self, file_path_str: str) -> None:
        from marginalia.parsers.base import get_parser

        file_path = Path(file_path_str).expanduser().resolve()
        if not file_path.exists():
            self.notify(f"File not found: {file_path}", severity="error")
            return

        try:
            content = get_parser(file_path).parse(file_path)
        except Exception as e:
            log.exception("Failed to open %s", file_path)
            self.notify(f"Error opening: {e}", severity="error")
            return

        if not content.chapters:
            self.notify("No chapters found in file", severity="warning")
            return
        chapter_index, start_line = resume_position(self.db, content, self._chapter)
        self.push_screen(
            ChapterScreen(
                content,
                chapter_index=chapter_index,
                deep_link=self._deep_link,
                start_line=start_line,
            )
        )

    async def action_quit(self) -> None:
        await self.client.close()
        if self.db is not None:
            self.db.close()
        self.exit()


def resume_position(
    db: Database | None, content: BookContent, chapter: int | None
) -> tuple[int, int | None]:
    """Chapter index and line to open at.

    An explicit chapter wins; otherwise the last saved position for the book is
    used, clamped to the chapters the file has now.
    """
    last = len(content.chapters) - 1
    if chapter is not None:
        return max(0, min(chapter, last)), None
    if db is None:
        return 0, None
    try:
        progress = db.get_progress(content.metadata.id)
    except sqlite3.Error as e:
        log.warning("Could not read reading progress: %s", e)
        return 0, None
    if progress is None:
        return 0, None
    index = max(0, min(progress.chapter_index, last))
    line = progress.line_number if index == progress.chapter_index else None
    return index, line


def _setup_logging(config: AppConfig) -> None:
    handler = logging.FileHandler(config.log_path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger("marginalia")
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marginalia", description="Read a text file with line likes and comments."
    )
    parser.add_argument("file", nargs="?", help="Plain-text chapter source")
    parser.add_argument(
        "--chapter", type=int, help="1-based chapter to open (default: where you left off)"
    )
    parser.add_argument("--comment", help="Open this comment on arrival")
    parser.add_argument("--line", help="Line the comment belongs to")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    config = load_config()
    _setup_logging(config)

    deep_link = OpenCommentRequest.from_query({"commentId": args.comment, "line": args.line})
    app = MarginaliaApp(
        config=config,
        open_file=args.file,
        chapter=max(0, args.chapter - 1) if args.chapter is not None else None,
        deep_link=deep_link,
    )
    app.run()


if __name__ == "__main__":
    main()
