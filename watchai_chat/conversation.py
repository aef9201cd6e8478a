"""Conversation identity, lazy creation, and navigation bookkeeping."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
from typing import TYPE_CHECKING

from .exceptions import ConversationCreateError, ConversationNotFoundError, WatchAIChatError
from .models import ChatMessage

if TYPE_CHECKING:
    from .client import WatchAIClient

LOGGER = logging.getLogger(__name__)

TITLE_LIMIT = 50

Navigator = Callable[[str], None]


class NavigationOrigin(str, Enum):
    """Why the view moved to a conversation."""

    LOCAL_CREATION = "local_creation"
    EXTERNAL = "external"


@dataclass(frozen=True)
class NavigationToken:
    """Issued once per conversation created by a send."""

    conversation_id: str
    origin: NavigationOrigin = NavigationOrigin.LOCAL_CREATION


@dataclass(frozen=True)
class EnsureResult:
    conversation_id: str
    navigation: NavigationToken | None = None

    @property
    def created(self) -> bool:
        return self.navigation is not None


def draft_title(text: str) -> str:
    """Title for a new conversation taken from its first message."""
    text = text.strip()
    if len(text) > TITLE_LIMIT:
        return text[:TITLE_LIMIT] + "..."
    return text


class ConversationCoordinator:
    """Ensure a conversation exists before a send and track the current one.

    When a send creates the conversation, the view navigates to its route and
    would normally reload history from the server, which would overwrite the
    placeholders of the turn in flight. The coordinator records a one-shot
    token for that navigation; ``consume_navigation`` reports it as a local
    creation exactly once.
    """

    def __init__(self, client: WatchAIClient, navigator: Navigator | None = None) -> None:
        self.client = client
        self.navigator = navigator
        self._current_id: str | None = None
        self._pending_tokens: dict[str, NavigationToken] = {}

    @property
    def current_conversation_id(self) -> str | None:
        return self._current_id

    @staticmethod
    def route_for(conversation_id: str) -> str:
        return f"/chat/{conversation_id}"

    async def ensure(self, existing_id: str | None, title: str) -> EnsureResult:
        """Return ``existing_id`` or create a conversation titled ``title``.

        Raises:
            ConversationCreateError: when the server refuses or the response
                carries no id. Nothing is recorded in that case.
        """
        if existing_id:
            return EnsureResult(conversation_id=existing_id)

        conversation = await self.client.create_conversation(title)
        if not conversation.id:
            raise ConversationCreateError("Conversation response did not include an id.")

        token = NavigationToken(conversation.id)
        self._pending_tokens[conversation.id] = token
        self._current_id = conversation.id
        LOGGER.info(
            "conversation.created",
            extra={"event": "conversation.created", "conversation_id": conversation.id},
        )
        self._navigate(conversation.id)
        return EnsureResult(conversation_id=conversation.id, navigation=token)

    def consume_navigation(self, conversation_id: str) -> NavigationOrigin:
        """Classify a navigation to ``conversation_id``, consuming any token."""
        token = self._pending_tokens.pop(conversation_id, None)
        if token is None:
            return NavigationOrigin.EXTERNAL
        return token.origin

    def select(self, conversation_id: str) -> bool:
        """Switch to a conversation chosen outside the send flow.

        Picking the conversation already shown is a no-op, so a turn in
        flight is not interrupted by a reload. Returns whether it navigated.
        """
        if conversation_id == self._current_id:
            return False
        self._current_id = conversation_id
        self._navigate(conversation_id)
        return True

    def reset(self) -> None:
        """Start a fresh chat with no conversation."""
        self._current_id = None
        self._pending_tokens.clear()

    async def load_history(self, conversation_id: str) -> list[ChatMessage]:
        """Fetch persisted messages for ``conversation_id``.

        A missing conversation resets to a fresh chat before the
        ``ConversationNotFoundError`` propagates.
        """
        try:
            messages = await self.client.fetch_messages(conversation_id)
        except ConversationNotFoundError:
            LOGGER.warning(
                "conversation.not_found",
                extra={"event": "conversation.not_found", "conversation_id": conversation_id},
            )
            self.reset()
            raise
        except WatchAIChatError:
            LOGGER.exception(
                "conversation.history.failed",
                extra={
                    "event": "conversation.history.failed",
                    "conversation_id": conversation_id,
                },
            )
            raise
        self._current_id = conversation_id
        return messages

    @staticmethod
    def model_from_history(messages: list[ChatMessage]) -> str | None:
        """Model recorded on the most recent assistant message, if any."""
        for message in reversed(messages):
            if message.role == "assistant" and message.model:
                return message.model
        return None

    def _navigate(self, conversation_id: str) -> None:
        if self.navigator is not None:
            self.navigator(self.route_for(conversation_id))
