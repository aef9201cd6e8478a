"""Status bar widget for turn and conversation telemetry."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.widgets import Label, Static

_STATE_ICONS = {
    "IDLE": "⚪",
    "QUOTA_CHECKING": "🟡",
    "ENSURING": "🟡",
    "SENDING": "🟡",
    "STREAMING": "🟢",
    "COMPLETED": "⚪",
    "BLOCKED": "🟠",
    "ERRORED": "🔴",
    "CANCELLED": "⚪",
}


class StatusBar(Static):
    """Render compact runtime status information.

    Segments (left to right):
        🟢 STREAMING  |  Model: gemini-2.0-flash  |  Chat: 65f1...  |  Messages: 4
    """

    DEFAULT_CSS = """
    StatusBar {
        layout: horizontal;
        height: auto;
    }
    StatusBar Label {
        margin-right: 1;
    }
    """

    def compose(self) -> ComposeResult:
        yield Label("⚪ IDLE", id="status_state")
        yield Label("|")
        yield Label("Model: -", id="status_model")
        yield Label("|")
        yield Label("Chat: new", id="status_conversation")
        yield Label("|")
        yield Label("Messages: 0", id="status_messages")

    def on_mount(self) -> None:
        self._lbl_state = self.query_one("#status_state", Label)
        self._lbl_model = self.query_one("#status_model", Label)
        self._lbl_conversation = self.query_one("#status_conversation", Label)
        self._lbl_messages = self.query_one("#status_messages", Label)

    def set_status(
        self,
        *,
        turn_state: str,
        model: str,
        conversation_id: str | None,
        message_count: int,
    ) -> None:
        icon = _STATE_ICONS.get(turn_state, "⚪")
        self._lbl_state.update(f"{icon} {turn_state}")
        self._lbl_model.update(f"Model: {model}")
        self._lbl_conversation.update(f"Chat: {conversation_id or 'new'}")
        self._lbl_messages.update(f"Messages: {message_count}")
