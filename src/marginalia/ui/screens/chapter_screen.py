from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Footer, ListItem, ListView, Static

from marginalia.engagement.cache import EngagementCache
from marginalia.engagement.comments import CommentThreadEngine
from marginalia.engagement.deeplink import DeepLinkResolver, OpenCommentRequest
from marginalia.engagement.likes import LikeController
from marginalia.engagement.panel import AnnotationPanelController, PanelState
from marginalia.library.models import (
    BookContent,
    BookTarget,
    Chapter,
    ChapterLine,
    ChapterTarget,
    Comment,
    LikeState,
    LineTarget,
    ReadingProgress,
    Target,
)
from marginalia.ui.screens.dialogs import CommentFormScreen, ConfirmDeleteScreen

if TYPE_CHECKING:
    from marginalia.app import MarginaliaApp

log = logging.getLogger(__name__)


def _like_badge(state: Optional[LikeState]) -> str:
    if state is None:
        return "♡ ?"  # not fetched yet: never shown as zero
    heart = "♥" if state.is_liked else "♡"
    return f"{heart} {state.total}"


def _format_time(ts: Optional[float]) -> str:
    if not ts:
        return ""
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


class ChapterScreen(Screen):
    BINDINGS = [
        Binding("escape", "go_back", "Back"),
        Binding("l", "like_line", "Like"),
        Binding("c", "toggle_comments", "Comments"),
        Binding("a", "add_comment", "Comment"),
        Binding("r", "reply", "Reply"),
        Binding("e", "edit_comment", "Edit"),
        Binding("d", "delete_comment", "Delete"),
        Binding("m", "toggle_mine", "Mine"),
        Binding("L", "like_chapter", "♥Ch"),
        Binding("B", "like_book", "♥Book"),
        Binding("comma", "prev_chapter", "<Ch"),
        Binding("full_stop", "next_chapter", "Ch>"),
    ]

    def __init__(
        self,
        content: BookContent,
        chapter_index: int = 0,
        deep_link: Optional[OpenCommentRequest] = None,
        start_line: Optional[int] = None,
    ) -> None:
        super().__init__()
        self._content = content
        self._chapter_idx = max(0, min(chapter_index, len(content.chapters) - 1))
        self._deep_link = deep_link
        self._line_widgets: dict[int, Static] = {}
        self._line_items: dict[int, ListItem] = {}
        self._author_name = ""
        self._start_line = start_line

    @property
    def mw(self) -> MarginaliaApp:
        return self.app  # type: ignore[return-value]

    @property
    def chapter(self) -> Chapter:
        return self._content.chapters[self._chapter_idx]

    def compose(self) -> ComposeResult:
        yield Static("", id="reader-header")
        with Horizontal(id="reader-body"):
            yield ListView(id="line-list")
            with Vertical(id="comment-panel"):
                yield Static("Comments", id="comment-title")
                yield ListView(id="comment-list")
        yield Footer()

    def on_mount(self) -> None:
        app = self.mw
        self.cache = EngagementCache(app.db)
        self.likes = LikeController(
            app.client,
            self.cache,
            reader_id=lambda: app.reader_id,
            on_change=self._on_like_changed,
            on_error=self._show_error,
        )
        self.comments = CommentThreadEngine(
            app.client,
            reader_id=lambda: app.reader_id,
            max_body_length=app.config.max_comment_length,
            on_error=self._show_error,
        )
        self.panel = AnnotationPanelController(
            self.comments, self.chapter.id, on_change=self._on_panel_changed
        )
        self.resolver = DeepLinkResolver(
            self.panel,
            self.comments,
            origin=app.config.site_origin,
            highlight_seconds=app.config.highlight_seconds,
            on_highlight=lambda _comment_id: self._render_comments(),
        )
        self._render_lines()
        if self._start_line is not None:
            self._scroll_to_line(self._start_line)
        self._update_header()
        self._load_engagement()

    def on_unmount(self) -> None:
        self.resolver.cancel()
        self.cache.close()

    # ── Rendering ──────────────────────────────────

    def _line_label(self, line: ChapterLine) -> str:
        state = self.cache.get(self.chapter.id, line.number)
        count = self.comments.comment_count(LineTarget(self.chapter.id, line.number))
        badges = _like_badge(state)
        if count:
            badges += f"  ✎ {count}"
        return f"{line.number:>4}  {line.text}   {badges}"

    def _render_lines(self) -> None:
        line_list = self.query_one("#line-list", ListView)
        line_list.clear()
        self._line_widgets = {}
        self._line_items = {}
        for line in self.chapter.display_lines:
            label = Static(self._line_label(line), markup=False)
            item = ListItem(label, classes="line-item")
            item.data = line.number  # type: ignore[attr-defined]
            self._line_widgets[line.number] = label
            self._line_items[line.number] = item
            line_list.append(item)
        if not self._line_widgets:
            line_list.append(ListItem(Static("(empty chapter)", classes="empty-text")))
        line_list.focus()

    def _refresh_line(self, line_number: int) -> None:
        widget = self._line_widgets.get(line_number)
        if widget is not None:
            line = self.chapter.lines[line_number - 1]
            widget.update(self._line_label(line))

    def _refresh_all_lines(self) -> None:
        for number in self._line_widgets:
            self._refresh_line(number)

    def _update_header(self) -> None:
        book = self._content.metadata
        chapter = self.chapter
        total_ch = len(self._content.chapters)
        parts = [
            f" {book.title}",
            f"Ch {chapter.index + 1}/{total_ch}: {chapter.title}",
            f"Chapter {_like_badge(self.likes.state(ChapterTarget(chapter.id)))}",
            f"Book {_like_badge(self.likes.state(BookTarget(book.id)))}",
        ]
        if self.comments.show_mine_only:
            parts.append("MY COMMENTS")
        self.query_one("#reader-header", Static).update("  │  ".join(parts))

    def _comment_label(self, comment: Comment) -> str:
        lines = [f"{comment.author_name}  {_format_time(comment.created_at)}"]
        if comment.parent_id:
            lines[0] = f"↳ {lines[0]}"
        lines.append(comment.body)
        if comment.hidden:
            lines.append("(hidden by a moderator; only you can see it)")
        if comment.admin_reply:
            by = comment.admin_reply_by or "Admin"
            lines.append(f"{by}: {comment.admin_reply}")
        return "\n".join(lines)

    def _render_comments(self) -> None:
        comment_list = self.query_one("#comment-list", ListView)
        comment_list.clear()
        line_number = self.panel.active_line
        if line_number is None:
            return
        items = self.comments.visible(LineTarget(self.chapter.id, line_number))
        if not items:
            comment_list.append(ListItem(Static("No comments yet. Press a.", classes="empty-text")))
            return
        highlighted = self.resolver.highlighted
        for comment in items:
            classes = "comment-item"
            if comment.parent_id:
                classes += " reply"
            if comment.hidden:
                classes += " hidden-comment"
            if comment.id == highlighted:
                classes += " highlighted"
            item = ListItem(Static(self._comment_label(comment), markup=False), classes=classes)
            item.data = comment.id  # type: ignore[attr-defined]
            comment_list.append(item)
        if highlighted:
            for idx, comment in enumerate(items):
                if comment.id == highlighted:
                    comment_list.index = idx

    def _on_like_changed(self, target: Target, state: LikeState) -> None:
        if isinstance(target, LineTarget):
            if target.chapter_id == self.chapter.id:
                self._refresh_line(target.line_number)
        else:
            self._update_header()

    def _on_panel_changed(self, state: PanelState) -> None:
        panel = self.query_one("#comment-panel")
        for number, item in self._line_items.items():
            item.set_class(number == state.line_number, "active")
        if state.is_open:
            panel.add_class("visible")
            self.query_one("#comment-title", Static).update(
                f"Line {state.line_number} comments"
            )
        else:
            panel.remove_class("visible")
        self._render_comments()

    def _show_error(self, message: str) -> None:
        self.notify(message, severity="error")

    # ── Selection helpers ──────────────────────────

    def _selected_line(self) -> Optional[int]:
        line_list = self.query_one("#line-list", ListView)
        item = line_list.highlighted_child
        return getattr(item, "data", None) if item is not None else None

    def _selected_comment(self) -> Optional[Comment]:
        comment_list = self.query_one("#comment-list", ListView)
        item = comment_list.highlighted_child
        comment_id = getattr(item, "data", None) if item is not None else None
        return self.comments.find(comment_id) if comment_id else None

    def _scroll_to_line(self, line_number: int) -> None:
        line_list = self.query_one("#line-list", ListView)
        for idx, number in enumerate(self._line_items):
            if number == line_number:
                line_list.index = idx
                break

    # ── Loading ────────────────────────────────────

    @work(exclusive=True, group="chapter-load")
    async def _load_engagement(self) -> None:
        chapter = self.chapter
        await self.likes.load(ChapterTarget(chapter.id))
        await self.likes.load(BookTarget(self._content.metadata.id))
        grouped = await self.comments.load_line_comments(chapter.id)
        if chapter is not self.chapter:
            return
        self.panel.mark_fetched(set(grouped))
        self._refresh_all_lines()

        if self._deep_link is not None:
            request, self._deep_link = self._deep_link, None
            if request.line_number is not None:
                self._scroll_to_line(request.line_number)
            if not await self.resolver.resolve(request):
                self.notify("That comment is no longer available.", severity="warning")
            self._render_comments()

    # ── Likes ──────────────────────────────────────

    def action_like_line(self) -> None:
        line_number = self._selected_line()
        if line_number is not None:
            self._like_line(line_number)

    @work(group="likes")
    async def _like_line(self, line_number: int) -> None:
        await self.likes.click_line(self.chapter.id, line_number)

    def action_like_chapter(self) -> None:
        self._toggle_like(ChapterTarget(self.chapter.id))

    def action_like_book(self) -> None:
        self._toggle_like(BookTarget(self._content.metadata.id))

    @work(group="likes")
    async def _toggle_like(self, target: Target) -> None:
        await self.likes.toggle(target)

    # ── Comments ───────────────────────────────────

    def action_toggle_comments(self) -> None:
        line_number = self._selected_line()
        if line_number is not None:
            self._toggle_panel(line_number)

    @work(group="panel")
    async def _toggle_panel(self, line_number: int) -> None:
        await self.panel.toggle_line(line_number)
        self._render_comments()
        self._refresh_line(line_number)

    @on(ListView.Selected, "#line-list")
    def on_line_selected(self, event: ListView.Selected) -> None:
        line_number = getattr(event.item, "data", None)
        if line_number is not None:
            self._toggle_panel(line_number)

    def action_toggle_mine(self) -> None:
        self.comments.show_mine_only = not self.comments.show_mine_only
        self._render_comments()
        self._refresh_all_lines()
        self._update_header()

    def action_add_comment(self) -> None:
        line_number = self.panel.active_line
        if line_number is None:
            self.notify("Open a line's comments first (c).", severity="warning")
            return
        text = self.chapter.line_text(line_number)
        self.app.push_screen(
            CommentFormScreen(
                f"Comment on line {line_number}: {text[:40]}",
                name=self._author_name,
                max_length=self.comments.max_body_length,
            ),
            callback=lambda result: self._on_comment_form(result, line_number, None),
        )

    def action_reply(self) -> None:
        parent = self._selected_comment()
        if parent is None:
            self.notify("Select a comment to reply to.", severity="warning")
            return
        self.app.push_screen(
            CommentFormScreen(
                f"Reply to {parent.author_name}",
                name=self._author_name,
                max_length=self.comments.max_body_length,
            ),
            callback=lambda result: self._on_comment_form(result, parent.line_number, parent.id),
        )

    def _on_comment_form(
        self,
        result: Optional[tuple[str, str]],
        line_number: Optional[int],
        parent_id: Optional[str],
    ) -> None:
        if not result or line_number is None:
            return
        name, body = result
        self._author_name = name.strip()
        self._send_comment(line_number, name, body, parent_id)

    @work(group="comments")
    async def _send_comment(
        self, line_number: int, name: str, body: str, parent_id: Optional[str]
    ) -> None:
        if parent_id:
            result = await self.comments.add_reply(parent_id, name, body)
        else:
            target = LineTarget(self.chapter.id, line_number)
            result = await self.comments.add_comment(target, name, body)
        if result.error and not result.ok:
            self.notify(result.error, severity="warning")
            return
        self._render_comments()
        self._refresh_line(line_number)

    def action_edit_comment(self) -> None:
        comment = self._selected_comment()
        if comment is None:
            return
        if not comment.is_owned_by(self.mw.reader_id) or comment.hidden:
            self.notify("You can only edit your own visible comments.", severity="warning")
            return
        self.app.push_screen(
            CommentFormScreen(
                "Edit comment",
                name=comment.author_name,
                body=comment.body,
                max_length=self.comments.max_body_length,
                ask_name=False,
            ),
            callback=lambda result: self._on_edit_form(result, comment.id),
        )

    def _on_edit_form(self, result: Optional[tuple[str, str]], comment_id: str) -> None:
        if result:
            self._edit_comment(comment_id, result[1])

    @work(group="comments")
    async def _edit_comment(self, comment_id: str, body: str) -> None:
        result = await self.comments.edit_comment(comment_id, body)
        if result.error:
            self.notify(result.error, severity="warning")
            return
        self._render_comments()

    def action_delete_comment(self) -> None:
        comment = self._selected_comment()
        if comment is not None:
            self._delete_comment(comment.id)

    async def _confirm_delete(self, comment: Comment) -> bool:
        preview = comment.body if len(comment.body) <= 30 else comment.body[:30] + "..."
        return bool(await self.app.push_screen_wait(ConfirmDeleteScreen(f'Delete "{preview}"?')))

    @work(group="comments")
    async def _delete_comment(self, comment_id: str) -> None:
        result = await self.comments.delete_comment(comment_id, self._confirm_delete)
        if result.error:
            self.notify(result.error, severity="warning")
            return
        if result.ok:
            self._render_comments()
            if self.panel.active_line is not None:
                self._refresh_line(self.panel.active_line)

    # ── Navigation ─────────────────────────────────

    def _save_progress(self, line_number: Optional[int] = None) -> None:
        db = self.mw.db
        if db is None:
            return
        progress = ReadingProgress(
            book_id=self._content.metadata.id,
            chapter_index=self._chapter_idx,
            line_number=line_number,
        )
        try:
            db.save_progress(progress)
        except sqlite3.Error as e:
            log.warning("Could not save reading progress: %s", e)

    @on(ListView.Highlighted, "#line-list")
    def on_line_highlighted(self, event: ListView.Highlighted) -> None:
        line_number = getattr(event.item, "data", None)
        if line_number is not None:
            self._save_progress(line_number)

    def _switch_chapter(self, index: int) -> None:
        self.cache.forget(self.chapter.id)
        self._chapter_idx = index
        self.panel.reset_navigation(self.chapter.id)
        self._render_lines()
        self._update_header()
        self._load_engagement()
        self._save_progress()

    def action_next_chapter(self) -> None:
        if self._chapter_idx < len(self._content.chapters) - 1:
            self._switch_chapter(self._chapter_idx + 1)

    def action_prev_chapter(self) -> None:
        if self._chapter_idx > 0:
            self._switch_chapter(self._chapter_idx - 1)

    def action_go_back(self) -> None:
        if self.panel.state.is_open:
            self.panel.click_backdrop()
            self.query_one("#line-list", ListView).focus()
            return
        self.app.exit()
