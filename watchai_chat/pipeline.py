"""Send handler tying the quota gate, coordinator, uploads and stream together."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
import logging
from typing import Any

import httpx

from .client import WatchAIClient
from .config import StreamConfig
from .conversation import ConversationCoordinator, Navigator, NavigationOrigin, draft_title
from .exceptions import (
    ConversationNotFoundError,
    QuotaExceededError,
    StreamProtocolError,
    WatchAIChatError,
)
from .models import PendingId
from .quota import QuotaGate
from .reconciler import UIStateReconciler
from .state import TurnState, TurnStateMachine
from .stream_decoder import MessageStreamDecoder
from .task_manager import TaskManager
from .uploads import AttachmentUploadManager

LOGGER = logging.getLogger(__name__)

ACTIVE_TURN = "active_turn"
_STREAM_DEFAULTS = StreamConfig()

ChangeListener = Callable[[], None]


@dataclass(frozen=True)
class TurnOutcome:
    """Result of one ``submit`` call."""

    state: TurnState
    accepted: bool = True
    conversation_id: str | None = None
    assistant_id: PendingId | None = None
    error: str | None = None


class ChatPipeline:
    """Run one send from quota check to the final assistant message.

    Every failure ends up as view state: a quota banner, a preserved draft,
    or an assistant message marked as an error. Only cancellation of the
    caller propagates out of ``submit``.
    """

    def __init__(
        self,
        client: WatchAIClient,
        *,
        model: str,
        quota_gate: QuotaGate | None = None,
        coordinator: ConversationCoordinator | None = None,
        uploads: AttachmentUploadManager | None = None,
        reconciler: UIStateReconciler | None = None,
        tasks: TaskManager | None = None,
        failure_message: str = _STREAM_DEFAULTS.failure_message,
        interrupted_message: str = _STREAM_DEFAULTS.interrupted_message,
        buffer_partial_lines: bool = True,
    ) -> None:
        self.client = client
        self.model = model
        self.tasks = tasks or TaskManager()
        self.quota_gate = quota_gate or QuotaGate(client)
        self.coordinator = coordinator or ConversationCoordinator(client)
        self.uploads = uploads or AttachmentUploadManager(client, self.tasks)
        self.reconciler = reconciler or UIStateReconciler()
        self.state = TurnStateMachine()
        self.failure_message = failure_message
        self.interrupted_message = interrupted_message
        self.buffer_partial_lines = buffer_partial_lines
        self.draft = ""
        self.quota_error: str | None = None
        self.last_error: str | None = None
        self._last_outcome: TurnOutcome | None = None
        self._listeners: list[ChangeListener] = []

    @classmethod
    def from_config(
        cls,
        config: dict[str, dict[str, Any]],
        *,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ChatPipeline:
        client = WatchAIClient.from_config(config, transport=transport)
        tasks = TaskManager()
        stream = config["stream"]
        return cls(
            client,
            model=str(config["app"]["model"]),
            quota_gate=QuotaGate(client, str(stream["quota_default_message"])),
            coordinator=ConversationCoordinator(client, navigator),
            uploads=AttachmentUploadManager.from_config(client, config, tasks),
            tasks=tasks,
            failure_message=str(stream["failure_message"]),
            interrupted_message=str(stream["interrupted_message"]),
            buffer_partial_lines=bool(stream["buffer_partial_lines"]),
        )

    def on_change(self, listener: ChangeListener) -> None:
        """Register a callback for draft, banner and turn state changes."""
        self._listeners.append(listener)

    @property
    def turn_state(self) -> TurnState:
        return self.state.state

    def dismiss_quota_error(self) -> None:
        if self.quota_error is not None:
            self.quota_error = None
            self._notify()

    def set_model(self, model: str) -> None:
        self.model = model
        self._notify()

    async def submit(self, text: str) -> TurnOutcome:
        """Send ``text`` with the currently selected attachments."""
        content = text.strip()
        if not content:
            return TurnOutcome(state=self.state.state, accepted=False)
        if not await self.state.begin():
            LOGGER.info("turn.rejected", extra={"event": "turn.rejected"})
            return TurnOutcome(state=self.state.state, accepted=False)

        self.draft = text
        self.quota_error = None
        self.last_error = None
        self._last_outcome = None
        self._notify()

        task = self.tasks.spawn(ACTIVE_TURN, self._run_turn(content))
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return self._last_outcome or TurnOutcome(state=TurnState.CANCELLED)

    async def _run_turn(self, content: str) -> TurnOutcome:
        conversation_id: str | None = None
        assistant_id: PendingId | None = None
        try:
            decision = await self.quota_gate.check(self.model)
            if not decision.can_send:
                raise QuotaExceededError(decision.message or "")

            await self.state.advance(TurnState.ENSURING)
            try:
                ensured = await self.coordinator.ensure(
                    self.coordinator.current_conversation_id, draft_title(content)
                )
            except WatchAIChatError as exc:
                LOGGER.warning(
                    "turn.ensure.failed",
                    extra={"event": "turn.ensure.failed", "error": str(exc)},
                )
                self.last_error = str(exc)
                await self.state.advance(TurnState.ERRORED)
                self._notify()
                return TurnOutcome(state=TurnState.ERRORED, error=str(exc))
            conversation_id = ensured.conversation_id

            self.draft = ""
            attachments = self.uploads.take_selected()
            turn = self.reconciler.append_placeholders(content, attachments)
            assistant_id = turn.assistant_id
            await self.state.advance(TurnState.SENDING)
            self._notify()

            await self._stream_response(
                content, conversation_id, [a.id for a in attachments], assistant_id
            )

            message = self.reconciler.find(assistant_id)
            if message is not None and message.is_error:
                raise StreamProtocolError(message.content)
            self.reconciler.finalize(assistant_id, model=self.model)
            await self.state.advance(TurnState.COMPLETED)
            self._notify()
            return TurnOutcome(
                state=TurnState.COMPLETED,
                conversation_id=conversation_id,
                assistant_id=assistant_id,
            )
        except QuotaExceededError as exc:
            self.quota_error = str(exc)
            await self.state.advance(TurnState.BLOCKED)
            self._notify()
            return TurnOutcome(state=TurnState.BLOCKED, error=str(exc))
        except StreamProtocolError as exc:
            # The server error text is already the final assistant message.
            await self.state.advance(TurnState.ERRORED)
            self._notify()
            return TurnOutcome(
                state=TurnState.ERRORED,
                conversation_id=conversation_id,
                assistant_id=assistant_id,
                error=str(exc),
            )
        except asyncio.CancelledError:
            self.reconciler.interrupt_streaming(self.interrupted_message)
            await self._settle(TurnState.CANCELLED)
            self._last_outcome = TurnOutcome(
                state=TurnState.CANCELLED,
                conversation_id=conversation_id,
                assistant_id=assistant_id,
            )
            LOGGER.info("turn.cancelled", extra={"event": "turn.cancelled"})
            self._notify()
            raise
        except Exception as exc:  # noqa: BLE001 - every failure becomes view state.
            LOGGER.exception(
                "turn.failed",
                extra={"event": "turn.failed", "conversation_id": conversation_id},
            )
            self.last_error = str(exc)
            self.reconciler.fail_streaming(self.failure_message)
            await self._settle(TurnState.ERRORED)
            self._notify()
            return TurnOutcome(
                state=TurnState.ERRORED,
                conversation_id=conversation_id,
                assistant_id=assistant_id,
                error=str(exc),
            )

    async def _stream_response(
        self,
        content: str,
        conversation_id: str,
        attachment_ids: list[str],
        assistant_id: PendingId,
    ) -> None:
        decoder = MessageStreamDecoder(buffer_partial_lines=self.buffer_partial_lines)
        async with self.client.stream_chat(
            content, conversation_id, self.model, attachment_ids
        ) as reads:
            await self.state.advance(TurnState.STREAMING)
            self._notify()
            async with aclosing(decoder.decode(reads)) as events:
                async for event in events:
                    if not self.reconciler.apply_event(assistant_id, event):
                        break
        LOGGER.info(
            "turn.stream.closed",
            extra={
                "event": "turn.stream.closed",
                "records": decoder.records_seen,
                "dropped": decoder.records_dropped,
                "done_sentinel": decoder.saw_done_sentinel,
            },
        )

    async def _settle(self, state: TurnState) -> None:
        if not self.state.state.is_terminal:
            await self.state.advance(state)

    async def interrupt(self) -> bool:
        """Cancel the active turn; return whether one was running."""
        if not self.tasks.is_running(ACTIVE_TURN):
            return False
        await self.tasks.cancel(ACTIVE_TURN)
        return True

    async def on_navigated(self, conversation_id: str) -> bool:
        """Reload history after navigating to ``conversation_id``.

        Navigation caused by this pipeline creating the conversation is
        skipped so the placeholders of the turn in flight survive. Returns
        whether history was loaded.
        """
        origin = self.coordinator.consume_navigation(conversation_id)
        if origin is NavigationOrigin.LOCAL_CREATION:
            LOGGER.debug(
                "conversation.reload.skipped",
                extra={
                    "event": "conversation.reload.skipped",
                    "conversation_id": conversation_id,
                },
            )
            return False

        await self.interrupt()
        try:
            messages = await self.coordinator.load_history(conversation_id)
        except ConversationNotFoundError as exc:
            self.reconciler.clear()
            self.last_error = str(exc)
            await self.state.reset()
            self._notify()
            return False
        except WatchAIChatError as exc:
            self.last_error = str(exc)
            self._notify()
            return False

        self.reconciler.replace_history(messages)
        model = self.coordinator.model_from_history(messages)
        if model:
            self.model = model
        await self.state.reset()
        self._notify()
        return True

    async def new_chat(self) -> None:
        """Drop the current conversation and start from an empty view."""
        await self.interrupt()
        self.coordinator.reset()
        self.reconciler.clear()
        self.quota_error = None
        self.last_error = None
        await self.state.reset()
        self._notify()

    async def aclose(self) -> None:
        """Cancel the active turn and every upload, then close the client."""
        await self.interrupt()
        await self.uploads.aclose()
        await self.tasks.cancel_all()
        await self.client.aclose()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
