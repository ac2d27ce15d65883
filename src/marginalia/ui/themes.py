"""Textual CSS themes for marginalia."""

APP_CSS = """
/* ── Global ────────────────────────────────── */
Screen {
    background: $surface;
}

/* ── Chapter Screen ────────────────────────── */
#reader-header {
    dock: top;
    height: 1;
    background: $primary;
    color: $text;
    padding: 0 2;
    text-style: bold;
}

#reader-body {
    height: 1fr;
}

#line-list {
    height: 1fr;
    padding: 0 2;
}

#comment-panel {
    width: 48;
    dock: right;
    display: none;
    background: $surface-darken-1;
    border-left: solid $primary;
}

#comment-panel.visible {
    display: block;
}

#comment-title {
    padding: 1 1;
    text-style: bold;
    background: $primary-darken-1;
    color: $text;
    text-align: center;
    height: 3;
}

#comment-list {
    height: 1fr;
}

/* ── List items ────────────────────────────── */
.line-item {
    padding: 0 1;
    height: auto;
}

.line-item.active {
    background: $primary-darken-2;
}

.comment-item {
    padding: 0 1;
    height: auto;
    border-bottom: dashed $primary-darken-1;
}

.comment-item.reply {
    padding-left: 3;
}

.comment-item.hidden-comment {
    color: $text-muted;
    text-style: italic;
}

.comment-item.highlighted {
    background: $warning-darken-2;
}

.empty-text {
    color: $text-muted;
    text-style: italic;
    padding: 1 1;
}
"""
