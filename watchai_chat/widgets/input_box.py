"""Input row containing the message field, attach button and send button."""

from __future__ import annotations

from textual.containers import Horizontal
from textual.message import Message
from textual.widgets import Button, Input


class InputBox(Horizontal):
    """Input region with message field, attach button and send button."""

    DEFAULT_CSS = """
    InputBox {
        height: auto;
    }
    InputBox > #message_input {
        width: 1fr;
    }
    """

    class AttachRequested(Message):
        """Posted when the user clicks the attach button."""

    class SendRequested(Message):
        """Posted when the user clicks the send button."""

    def compose(self):  # type: ignore[override]
        yield Input(placeholder="Type your message...", id="message_input")
        yield Button("Attach", id="attach_button", variant="default")
        yield Button("Send", id="send_button", variant="success")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "attach_button":
            event.stop()
            self.post_message(self.AttachRequested())
        elif event.button.id == "send_button":
            event.stop()
            self.post_message(self.SendRequested())
