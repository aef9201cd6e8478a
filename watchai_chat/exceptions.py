"""Domain exception hierarchy for the WatchAI chat client."""

from __future__ import annotations


class WatchAIChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class WatchAIConnectionError(WatchAIChatError):
    """Raised when the WatchAI server cannot be reached."""


class QuotaExceededError(WatchAIChatError):
    """Raised when the quota gate refuses a send."""


class ConversationCreateError(WatchAIChatError):
    """Raised when a new conversation could not be created."""


class ConversationNotFoundError(WatchAIChatError):
    """Raised when a conversation's history does not exist on the server."""


class StreamTransportError(WatchAIChatError):
    """Raised when the chat request or its response stream fails in transit."""


class StreamProtocolError(WatchAIChatError):
    """Raised for a server-emitted ``error`` frame on the response stream."""


class RecordParseError(WatchAIChatError):
    """Raised when a single stream record cannot be decoded."""


class UploadFailedError(WatchAIChatError):
    """Raised when a file upload is rejected or its request fails."""


class ConfigValidationError(WatchAIChatError):
    """Raised when configuration cannot be validated safely."""
