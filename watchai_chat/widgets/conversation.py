"""Scrollable conversation view widget."""

from __future__ import annotations

from textual.containers import VerticalScroll

from ..models import ChatMessage
from .message import MessageBubble


class ConversationView(VerticalScroll):
    """A scrollable container that mirrors the reconciler's message list."""

    def __init__(
        self, show_timestamps: bool = True, show_tokens: bool = True, **kwargs
    ) -> None:
        super().__init__(**kwargs)
        self.show_timestamps = show_timestamps
        self.show_tokens = show_tokens
        self._bubbles: list[MessageBubble] = []

    @property
    def bubbles(self) -> list[MessageBubble]:
        return list(self._bubbles)

    async def sync(self, messages: list[ChatMessage]) -> None:
        """Update bubbles in place, mounting new ones and rebuilding on divergence."""
        shared = 0
        for bubble, message in zip(self._bubbles, messages):
            if bubble.message.id != message.id:
                break
            shared += 1

        if shared < len(self._bubbles):
            for bubble in self._bubbles[shared:]:
                await bubble.remove()
            del self._bubbles[shared:]

        for bubble, message in zip(self._bubbles, messages):
            bubble.update_message(message)

        added = False
        for message in messages[shared:]:
            bubble = MessageBubble(
                message,
                show_timestamp=self.show_timestamps,
                show_tokens=self.show_tokens,
            )
            bubble.add_class(f"message-{message.role}")
            self._bubbles.append(bubble)
            await self.mount(bubble)
            added = True
        if added or any(m.is_streaming for m in messages):
            self.scroll_end(animate=False)
