from __future__ import annotations

from typing import Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label


class ConfirmDeleteScreen(ModalScreen[bool]):
    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("y", "confirm", "Yes"),
        Binding("n", "cancel", "No"),
    ]

    DEFAULT_CSS = """
    ConfirmDeleteScreen {
        align: center middle;
    }
    #confirm-delete-dialog {
        width: 60;
        height: 9;
        background: $surface;
        border: solid $error;
        padding: 1 2;
    }
    #confirm-delete-msg {
        text-align: center;
        margin: 1 0;
    }
    #confirm-delete-buttons {
        align: center middle;
        height: 3;
    }
    #confirm-delete-buttons Button {
        margin: 0 2;
    }
    """

    def __init__(self, message: str) -> None:
        super().__init__()
        self._message = message

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-delete-dialog"):
            yield Label(self._message, id="confirm-delete-msg")
            with Horizontal(id="confirm-delete-buttons"):
                yield Button("Delete (y)", variant="error", id="cd-yes")
                yield Button("Cancel (n)", variant="default", id="cd-no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "cd-yes")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class CommentFormScreen(ModalScreen[Optional[tuple[str, str]]]):
    """Collects an author name and a comment body.

    Dismisses with ``(name, body)`` or ``None`` when cancelled. With
    ``ask_name=False`` only the body is editable (used for edits).
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    DEFAULT_CSS = """
    CommentFormScreen {
        align: center middle;
    }
    #comment-form-dialog {
        width: 70;
        height: auto;
        background: $surface;
        border: solid $primary;
        padding: 1 2;
    }
    #comment-form-title {
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
    }
    #comment-form-dialog Input {
        margin-bottom: 1;
    }
    #comment-form-buttons {
        align: center middle;
        height: 3;
    }
    #comment-form-buttons Button {
        margin: 0 2;
    }
    """

    def __init__(
        self,
        title: str,
        name: str = "",
        body: str = "",
        max_length: int = 500,
        ask_name: bool = True,
    ) -> None:
        super().__init__()
        self._title = title
        self._name = name
        self._body = body
        self._max_length = max_length
        self._ask_name = ask_name

    def compose(self) -> ComposeResult:
        with Vertical(id="comment-form-dialog"):
            yield Label(self._title, id="comment-form-title")
            if self._ask_name:
                yield Input(value=self._name, placeholder="Your name", id="cf-name")
            yield Input(
                value=self._body,
                placeholder=f"Your comment (max {self._max_length} characters)",
                max_length=self._max_length,
                id="cf-body",
            )
            with Horizontal(id="comment-form-buttons"):
                yield Button("Send", variant="primary", id="cf-send")
                yield Button("Cancel [Esc]", variant="default", id="cf-cancel")

    def on_mount(self) -> None:
        if self._ask_name and not self._name:
            self.query_one("#cf-name", Input).focus()
        else:
            self.query_one("#cf-body", Input).focus()

    def _submit(self) -> None:
        name = self.query_one("#cf-name", Input).value if self._ask_name else self._name
        body = self.query_one("#cf-body", Input).value
        self.dismiss((name, body))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cf-send":
            self._submit()
        else:
            self.dismiss(None)

    def action_cancel(self) -> None:
        self.dismiss(None)
