"""Per-send turn state machine with lock-protected transitions."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging

LOGGER = logging.getLogger(__name__)


class TurnState(str, Enum):
    """Lifecycle of a single send, from submission to a terminal state."""

    IDLE = "IDLE"
    QUOTA_CHECKING = "QUOTA_CHECKING"
    BLOCKED = "BLOCKED"
    ENSURING = "ENSURING"
    SENDING = "SENDING"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    ERRORED = "ERRORED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def accepts_submission(self) -> bool:
        """Whether a new turn may start from this state."""
        return self is TurnState.IDLE or self.is_terminal


_TERMINAL_STATES = frozenset(
    {
        TurnState.BLOCKED,
        TurnState.COMPLETED,
        TurnState.ERRORED,
        TurnState.CANCELLED,
    }
)

# Allowed forward edges. Any non-terminal state may also fall to ERRORED or
# CANCELLED when the turn fails or is interrupted.
_TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.QUOTA_CHECKING: frozenset({TurnState.BLOCKED, TurnState.ENSURING}),
    TurnState.ENSURING: frozenset({TurnState.SENDING}),
    TurnState.SENDING: frozenset({TurnState.STREAMING}),
    TurnState.STREAMING: frozenset({TurnState.COMPLETED}),
}


class TurnStateMachine:
    """Manage turn transitions with async lock semantics.

    ``begin()`` is the latch that rejects a second concurrent submission: it
    only succeeds from IDLE or a terminal state.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._state = TurnState.IDLE

    @property
    def state(self) -> TurnState:
        """Return the current state without taking the lock."""
        return self._state

    async def get_state(self) -> TurnState:
        """Return the current state under lock."""
        async with self._lock:
            return self._state

    async def begin(self) -> bool:
        """Enter QUOTA_CHECKING when no other turn is in flight."""
        async with self._lock:
            if not self._state.accepts_submission:
                return False
            self._set(TurnState.QUOTA_CHECKING)
            return True

    async def advance(self, new_state: TurnState) -> TurnState:
        """Move the active turn forward, rejecting edges the lifecycle forbids."""
        async with self._lock:
            current = self._state
            allowed = _TRANSITIONS.get(current, frozenset())
            escape = new_state in (TurnState.ERRORED, TurnState.CANCELLED)
            if new_state not in allowed and not (escape and not current.is_terminal):
                raise ValueError(
                    f"Invalid turn transition {current.value} -> {new_state.value}"
                )
            self._set(new_state)
            return self._state

    async def transition_if(self, expected_state: TurnState, new_state: TurnState) -> bool:
        """Transition only when current state matches expected state."""
        async with self._lock:
            if self._state != expected_state:
                return False
            self._set(new_state)
            return True

    async def reset(self) -> None:
        """Return to IDLE, e.g. when the view switches conversations."""
        async with self._lock:
            self._set(TurnState.IDLE)

    async def can_submit(self) -> bool:
        """Return True when message submission is allowed."""
        async with self._lock:
            return self._state.accepts_submission

    def _set(self, new_state: TurnState) -> None:
        old_state = self._state
        self._state = new_state
        LOGGER.info(
            "turn.state.transition",
            extra={
                "event": "turn.state.transition",
                "from_state": old_state.value,
                "to_state": new_state.value,
            },
        )
