"""Message bubble widget for conversation rendering."""

from __future__ import annotations

from typing import Any

from rich.markdown import Markdown
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Static

from ..models import ChatMessage

STREAMING_PLACEHOLDER = "…"


def format_timestamp(created_at: str) -> str:
    """Return ``HH:MM`` from an ISO timestamp, or the raw value if unparsable."""
    if "T" not in created_at:
        return created_at
    return created_at.split("T", 1)[1][:5]


class MessageBubble(Vertical):
    """Render one chat message with role header, body, and token footer."""

    DEFAULT_CSS = """
    MessageBubble {
        height: auto;
        margin-bottom: 1;
    }
    MessageBubble > #header-block {
        padding: 0;
    }
    MessageBubble > #content-block {
        height: auto;
    }
    MessageBubble > #meta-block {
        color: $text-muted;
    }
    MessageBubble.is-error > #content-block {
        color: $error;
    }
    """

    def __init__(
        self,
        message: ChatMessage,
        show_timestamp: bool = True,
        show_tokens: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.message = message
        self.show_timestamp = show_timestamp
        self.show_tokens = show_tokens
        self.add_class(f"role-{message.role}")
        self._header_widget: Static | None = None
        self._content_widget: Static | None = None
        self._meta_widget: Static | None = None

    @property
    def role_prefix(self) -> str:
        """Return a human-friendly role label."""
        return "You" if self.message.role == "user" else "WatchAI"

    def _compose_header(self) -> str:
        stamp = format_timestamp(self.message.created_at) if self.show_timestamp else ""
        if stamp:
            return f"**{self.role_prefix}**  _{stamp}_"
        return f"**{self.role_prefix}**"

    def _compose_meta(self) -> str:
        parts: list[str] = []
        if self.message.attachments:
            names = ", ".join(f.filename for f in self.message.attachments)
            parts.append(f"📎 {names}")
        if self.message.citations:
            parts.append(f"{len(self.message.citations)} sources")
        if self.show_tokens and self.message.tokens is not None:
            parts.append(f"{self.message.tokens.total} tokens")
        return "  ·  ".join(parts)

    def compose(self) -> ComposeResult:
        self._header_widget = Static(Markdown(self._compose_header()), id="header-block")
        self._content_widget = Static("", id="content-block")
        self._meta_widget = Static("", id="meta-block")
        yield self._header_widget
        yield self._content_widget
        yield self._meta_widget

    def on_mount(self) -> None:
        self.refresh_message()

    def update_message(self, message: ChatMessage) -> None:
        """Rebind the bubble to ``message`` and rerender."""
        self.message = message
        self.refresh_message()

    def refresh_message(self) -> None:
        if self._content_widget is None or self._meta_widget is None:
            return
        self.set_class(self.message.is_error, "is-error")
        self.set_class(self.message.is_streaming, "is-streaming")
        text = self.message.content.rstrip()
        if self.message.is_error:
            self._content_widget.update(Text(text))
        elif text:
            self._content_widget.update(Markdown(text))
        else:
            self._content_widget.update(
                STREAMING_PLACEHOLDER if self.message.is_streaming else ""
            )
        meta = self._compose_meta()
        self._meta_widget.update(meta)
        self._meta_widget.display = bool(meta)
