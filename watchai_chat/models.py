"""Client-side domain types for conversations, messages, and uploads."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from itertools import count
import time
from typing import Literal, Union

Role = Literal["user", "assistant"]

_pending_counter = count(1)


@dataclass(frozen=True)
class PendingId:
    """Identity of a message created locally and not yet confirmed by the server."""

    local_id: str

    @classmethod
    def new(cls, role: str) -> PendingId:
        # Millisecond timestamp plus a counter so two placeholders
        # created in the same millisecond never collide.
        stamp = int(time.time() * 1000)
        return cls(f"{role}-{stamp}-{next(_pending_counter)}")

    def __str__(self) -> str:
        return f"pending:{self.local_id}"


@dataclass(frozen=True)
class PersistedId:
    """Identity assigned by the server."""

    server_id: str

    def __str__(self) -> str:
        return self.server_id


MessageId = Union[PendingId, PersistedId]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Conversation:
    id: str
    title: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class UserFile:
    """An already-persisted file that can be attached to the next message."""

    id: str
    filename: str
    mime_type: str = ""
    size: int = 0
    type: str = ""


# Messages only ever hold the reference part of a persisted file.
FileRef = UserFile


@dataclass(frozen=True)
class Citation:
    source: str
    content: str
    url: str | None = None
    start_index: int | None = None
    end_index: int | None = None


@dataclass(frozen=True)
class TokenUsage:
    prompt: int = 0
    completion: int = 0
    total: int = 0


@dataclass
class ChatMessage:
    """A single entry of the ordered message list."""

    id: MessageId
    role: Role
    content: str = ""
    created_at: str = field(default_factory=utc_now_iso)
    is_streaming: bool = False
    is_error: bool = False
    attachments: list[FileRef] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    tokens: TokenUsage | None = None
    model: str | None = None

    @property
    def is_pending(self) -> bool:
        return isinstance(self.id, PendingId)


class UploadStatus(str, Enum):
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class UploadingFile:
    """Tracked state of one in-flight (or failed) upload."""

    temp_id: str
    filename: str
    local_url: str
    mime_type: str
    status: UploadStatus = UploadStatus.UPLOADING
    progress: int = 0
    error_message: str | None = None
    file: UserFile | None = None


@dataclass(frozen=True)
class QuotaDecision:
    can_send: bool
    message: str | None = None
