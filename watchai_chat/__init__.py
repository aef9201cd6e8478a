"""Top-level package for the WatchAI chat client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import WatchAIChatApp
    from .client import WatchAIClient
    from .config import ensure_config_dir, load_config
    from .conversation import ConversationCoordinator, NavigationOrigin
    from .exceptions import (
        ConfigValidationError,
        ConversationCreateError,
        ConversationNotFoundError,
        QuotaExceededError,
        RecordParseError,
        StreamProtocolError,
        StreamTransportError,
        UploadFailedError,
        WatchAIChatError,
        WatchAIConnectionError,
    )
    from .pipeline import ChatPipeline, TurnOutcome
    from .quota import QuotaGate
    from .reconciler import UIStateReconciler
    from .state import TurnState, TurnStateMachine
    from .stream_decoder import MessageStreamDecoder, StreamAccumulator
    from .uploads import AttachmentUploadManager

__all__ = [
    "AttachmentUploadManager",
    "ChatPipeline",
    "ConfigValidationError",
    "ConversationCoordinator",
    "ConversationCreateError",
    "ConversationNotFoundError",
    "MessageStreamDecoder",
    "NavigationOrigin",
    "QuotaExceededError",
    "QuotaGate",
    "RecordParseError",
    "StreamAccumulator",
    "StreamProtocolError",
    "StreamTransportError",
    "TurnOutcome",
    "TurnState",
    "TurnStateMachine",
    "UIStateReconciler",
    "UploadFailedError",
    "WatchAIChatApp",
    "WatchAIChatError",
    "WatchAIClient",
    "WatchAIConnectionError",
    "ensure_config_dir",
    "load_config",
]

_EXCEPTION_NAMES = {
    "ConfigValidationError",
    "ConversationCreateError",
    "ConversationNotFoundError",
    "QuotaExceededError",
    "RecordParseError",
    "StreamProtocolError",
    "StreamTransportError",
    "UploadFailedError",
    "WatchAIChatError",
    "WatchAIConnectionError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols to keep the UI dependency optional at import time."""
    if name in _EXCEPTION_NAMES:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"ensure_config_dir", "load_config"}:
        from .config import ensure_config_dir, load_config

        return {"ensure_config_dir": ensure_config_dir, "load_config": load_config}[name]
    if name in {"ChatPipeline", "TurnOutcome"}:
        from .pipeline import ChatPipeline, TurnOutcome

        return {"ChatPipeline": ChatPipeline, "TurnOutcome": TurnOutcome}[name]
    if name in {"TurnState", "TurnStateMachine"}:
        from .state import TurnState, TurnStateMachine

        return {"TurnState": TurnState, "TurnStateMachine": TurnStateMachine}[name]
    if name in {"MessageStreamDecoder", "StreamAccumulator"}:
        from .stream_decoder import MessageStreamDecoder, StreamAccumulator

        return {
            "MessageStreamDecoder": MessageStreamDecoder,
            "StreamAccumulator": StreamAccumulator,
        }[name]
    if name in {"ConversationCoordinator", "NavigationOrigin"}:
        from .conversation import ConversationCoordinator, NavigationOrigin

        return {
            "ConversationCoordinator": ConversationCoordinator,
            "NavigationOrigin": NavigationOrigin,
        }[name]
    if name == "WatchAIClient":
        from .client import WatchAIClient

        return WatchAIClient
    if name == "QuotaGate":
        from .quota import QuotaGate

        return QuotaGate
    if name == "UIStateReconciler":
        from .reconciler import UIStateReconciler

        return UIStateReconciler
    if name == "AttachmentUploadManager":
        from .uploads import AttachmentUploadManager

        return AttachmentUploadManager
    if name == "WatchAIChatApp":
        from .app import WatchAIChatApp

        return WatchAIChatApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
