"""Wire schemas for the WatchAI HTTP API and the chat stream frames."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)

from .models import (
    ChatMessage,
    Citation,
    Conversation,
    PersistedId,
    QuotaDecision,
    TokenUsage,
    UserFile,
)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class QuotaResponse(_WireModel):
    """Quota verdict; any body without a truthy ``canSend`` is a refusal."""

    can_send: bool = Field(default=False, alias="canSend")
    message: str | None = Field(
        default=None, validation_alias=AliasChoices("message", "error")
    )

    @field_validator("can_send", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("message", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    def to_decision(self) -> QuotaDecision:
        return QuotaDecision(can_send=self.can_send, message=self.message or None)


class ConversationSchema(_WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    title: str = ""
    updated_at: str = Field(default="", alias="updatedAt")

    def to_domain(self) -> Conversation:
        return Conversation(id=self.id, title=self.title, updated_at=self.updated_at)


class ConversationEnvelope(_WireModel):
    conversation: ConversationSchema


class UserFileSchema(_WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    filename: str
    mime_type: str = Field(default="", alias="mimeType")
    size: int = 0
    type: str = ""

    def to_domain(self) -> UserFile:
        return UserFile(
            id=self.id,
            filename=self.filename,
            mime_type=self.mime_type,
            size=self.size,
            type=self.type,
        )


class UploadResponse(_WireModel):
    file: UserFileSchema


class TokenUsageSchema(_WireModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def to_domain(self) -> TokenUsage:
        return TokenUsage(prompt=self.prompt, completion=self.completion, total=self.total)


class CitationSchema(_WireModel):
    source: str = ""
    content: str = ""
    url: str | None = None
    start_index: int | None = Field(default=None, alias="startIndex")
    end_index: int | None = Field(default=None, alias="endIndex")

    def to_domain(self) -> Citation:
        return Citation(
            source=self.source,
            content=self.content,
            url=self.url,
            start_index=self.start_index,
            end_index=self.end_index,
        )


class HistoryMessageSchema(_WireModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    role: Literal["user", "assistant"]
    content: str = ""
    created_at: str = Field(default="", alias="createdAt")
    model: str | None = None
    is_error: bool = Field(default=False, alias="isError")
    tokens: TokenUsageSchema | None = None
    citations: list[CitationSchema] | None = None
    attachment_details: list[UserFileSchema] | None = Field(
        default=None, alias="attachmentDetails"
    )

    def to_domain(self) -> ChatMessage:
        return ChatMessage(
            id=PersistedId(self.id),
            role=self.role,
            content=self.content,
            created_at=self.created_at,
            is_error=self.is_error,
            model=self.model,
            tokens=self.tokens.to_domain() if self.tokens else None,
            citations=[c.to_domain() for c in self.citations or []],
            attachments=[f.to_domain() for f in self.attachment_details or []],
        )


class _HistoryConversation(_WireModel):
    messages: list[HistoryMessageSchema] = Field(default_factory=list)


class HistoryResponse(_WireModel):
    conversation: _HistoryConversation | None = None
    messages: list[HistoryMessageSchema] = Field(default_factory=list)

    def to_domain(self) -> list[ChatMessage]:
        source = self.conversation.messages if self.conversation else []
        return [m.to_domain() for m in source or self.messages]


# -- Stream frames ---------------------------------------------------------


class ChunkEvent(_WireModel):
    type: Literal["chunk"] = "chunk"
    content: str = ""


class ErrorEvent(_WireModel):
    type: Literal["error"] = "error"
    error: str = ""


class StartEvent(_WireModel):
    type: Literal["start"] = "start"
    conversation_id: str | None = Field(default=None, alias="conversationId")
    user_message_id: str | None = Field(default=None, alias="userMessageId")


class DoneEvent(_WireModel):
    type: Literal["done"] = "done"
    message_id: str | None = Field(default=None, alias="messageId")
    tokens: TokenUsageSchema | None = None
    citations: list[CitationSchema] | None = None


StreamEvent = Annotated[
    Union[ChunkEvent, ErrorEvent, StartEvent, DoneEvent],
    Field(discriminator="type"),
]

STREAM_EVENT_TYPES: frozenset[str] = frozenset({"chunk", "error", "start", "done"})

stream_event_adapter: TypeAdapter[Any] = TypeAdapter(StreamEvent)
