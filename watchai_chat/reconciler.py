"""Ordered message list owned by the chat view."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging

from .models import ChatMessage, FileRef, MessageId, PendingId
from .stream_decoder import StreamAccumulator, StreamEventType

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


@dataclass(frozen=True)
class PendingTurn:
    user_id: PendingId
    assistant_id: PendingId


class UIStateReconciler:
    """Apply optimistic placeholders and streamed updates to the message list.

    While a turn is active the list only grows or mutates entries in place;
    nothing is reordered or removed. At most one assistant message streams,
    and it sits right after its user message.
    """

    def __init__(self) -> None:
        self._messages: list[ChatMessage] = []
        self._accumulators: dict[PendingId, StreamAccumulator] = {}
        self._listeners: list[ChangeListener] = []

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def is_turn_active(self) -> bool:
        return any(m.is_streaming for m in self._messages)

    def on_change(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def find(self, message_id: MessageId) -> ChatMessage | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def append_placeholders(
        self, content: str, attachments: list[FileRef] | None = None
    ) -> PendingTurn:
        """Append the user message and an empty streaming assistant message."""
        if self.is_turn_active:
            raise RuntimeError("A response is already streaming.")
        user = ChatMessage(
            id=PendingId.new("user"),
            role="user",
            content=content,
            attachments=list(attachments or []),
        )
        assistant = ChatMessage(
            id=PendingId.new("assistant"),
            role="assistant",
            content="",
            is_streaming=True,
        )
        self._messages.extend((user, assistant))
        self._accumulators[assistant.id] = StreamAccumulator()
        self._notify()
        return PendingTurn(user_id=user.id, assistant_id=assistant.id)

    def apply_event(self, assistant_id: PendingId, event: StreamEventType) -> bool:
        """Fold one decoded event into the streaming message.

        Returns ``False`` once the message has stopped streaming, which tells
        the caller the turn is over.
        """
        message = self.find(assistant_id)
        accumulator = self._accumulators.get(assistant_id)
        if message is None or accumulator is None or not message.is_streaming:
            return False
        if not accumulator.apply(event):
            return True

        message.content = accumulator.content
        message.tokens = accumulator.tokens
        message.citations = list(accumulator.citations)
        if accumulator.is_error:
            message.is_error = True
            message.is_streaming = False
            self._accumulators.pop(assistant_id, None)
            LOGGER.info(
                "turn.stream.server_error",
                extra={"event": "turn.stream.server_error", "message_id": str(assistant_id)},
            )
        self._notify()
        return message.is_streaming

    def finalize(
        self,
        assistant_id: PendingId,
        content: str | None = None,
        model: str | None = None,
    ) -> None:
        """Stop streaming the message, keeping accumulated content unless given."""
        message = self.find(assistant_id)
        self._accumulators.pop(assistant_id, None)
        if message is None or not message.is_streaming:
            return
        if content is not None:
            message.content = content
        message.is_streaming = False
        message.model = model
        self._notify()

    def fail_streaming(self, text: str) -> None:
        """Replace any streaming message with ``text`` and mark it as an error."""
        changed = False
        for message in self._messages:
            if message.is_streaming:
                message.content = text
                message.is_streaming = False
                message.is_error = True
                self._accumulators.pop(message.id, None)  # type: ignore[arg-type]
                changed = True
        if changed:
            self._notify()

    def interrupt_streaming(self, suffix: str) -> None:
        """Stop any streaming message, keeping what arrived and noting the cut."""
        changed = False
        for message in self._messages:
            if message.is_streaming:
                message.content = (
                    f"{message.content}\n\n{suffix}" if message.content else suffix
                )
                message.is_streaming = False
                self._accumulators.pop(message.id, None)  # type: ignore[arg-type]
                changed = True
        if changed:
            self._notify()

    def replace_history(self, messages: list[ChatMessage]) -> None:
        """Swap in persisted history after navigating to a conversation."""
        self._messages = list(messages)
        self._accumulators.clear()
        self._notify()

    def clear(self) -> None:
        self._messages = []
        self._accumulators.clear()
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
