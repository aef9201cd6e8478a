"""Async HTTP client for the WatchAI chat service."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .exceptions import (
    ConversationCreateError,
    ConversationNotFoundError,
    StreamTransportError,
    UploadFailedError,
    WatchAIChatError,
    WatchAIConnectionError,
)
from .models import ChatMessage, Conversation, QuotaDecision, UserFile
from .schemas import ConversationEnvelope, HistoryResponse, QuotaResponse, UploadResponse

LOGGER = logging.getLogger(__name__)

# Called with (bytes_sent, bytes_total) as the request body is handed to the transport.
ProgressCallback = Callable[[int, int], None]


class WatchAIClient:
    """Thin typed wrapper over ``httpx.AsyncClient`` for the pipeline's calls.

    Every method maps transport failures to the domain exception hierarchy so
    callers only ever handle ``WatchAIChatError`` subclasses.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120,
        headers: dict[str, str] | None = None,
        quota_path: str = "/quota",
        conversations_path: str = "/conversations",
        chat_path: str = "/chat",
        upload_path: str = "/files/upload",
        upload_chunk_bytes: int = 64 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.quota_path = quota_path
        self.conversations_path = conversations_path
        self.chat_path = chat_path
        self.upload_path = upload_path
        self.upload_chunk_bytes = max(1, upload_chunk_bytes)
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers or {},
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: dict[str, dict[str, Any]],
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> WatchAIClient:
        server = config["server"]
        return cls(
            str(server["base_url"]),
            timeout=float(server["timeout"]),
            headers=dict(server.get("headers") or {}),
            quota_path=str(server["quota_path"]),
            conversations_path=str(server["conversations_path"]),
            chat_path=str(server["chat_path"]),
            upload_path=str(server["upload_path"]),
            upload_chunk_bytes=int(config["uploads"]["progress_chunk_bytes"]),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _map_exception(self, exc: Exception) -> WatchAIChatError:
        if isinstance(exc, WatchAIChatError):
            return exc
        if isinstance(
            exc,
            (httpx.ConnectError, httpx.ConnectTimeout, httpx.NetworkError),
        ):
            return WatchAIConnectionError(
                f"Unable to connect to WatchAI at {self.base_url}."
            )
        return StreamTransportError(f"Request to {self.base_url} failed: {exc}")

    @staticmethod
    def _error_text(response: httpx.Response, fallback: str) -> str:
        try:
            payload = response.json()
        except ValueError:
            return fallback
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, str) and error.strip():
                return error.strip()
        return fallback

    async def check_quota(self, model_id: str) -> QuotaDecision:
        """``GET <quota_path>?model=<id>``.

        The JSON body is honoured whatever the status, so a 401 or 429 carrying
        ``{"error": ...}`` is a refusal. Only an unreachable server or a body
        that is not a JSON object raises.
        """
        try:
            response = await self._http.get(self.quota_path, params={"model": model_id})
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise self._map_exception(exc) from exc
        if not isinstance(payload, dict):
            raise WatchAIChatError(
                f"Quota check returned HTTP {response.status_code} without a JSON object"
            )
        return QuotaResponse.model_validate(payload).to_decision()

    async def create_conversation(self, title: str) -> Conversation:
        """``POST <conversations_path>`` and return the created conversation."""
        try:
            response = await self._http.post(self.conversations_path, json={"title": title})
        except httpx.HTTPError as exc:
            raise ConversationCreateError(
                f"Failed to create conversation: {self._map_exception(exc)}"
            ) from exc
        if response.is_error:
            raise ConversationCreateError(
                self._error_text(response, "Failed to create conversation")
            )
        try:
            envelope = ConversationEnvelope.model_validate(response.json())
        except (ValidationError, ValueError) as exc:
            raise ConversationCreateError(
                "Conversation response did not include an id."
            ) from exc
        return envelope.conversation.to_domain()

    async def fetch_messages(self, conversation_id: str) -> list[ChatMessage]:
        """Load persisted history for ``conversation_id``."""
        path = f"{self.conversations_path}/{conversation_id}"
        try:
            response = await self._http.get(path)
        except httpx.HTTPError as exc:
            raise self._map_exception(exc) from exc
        if response.status_code == 404:
            raise ConversationNotFoundError(f"Conversation {conversation_id!r} not found.")
        if response.is_error:
            raise StreamTransportError(
                self._error_text(response, f"HTTP {response.status_code}")
            )
        try:
            return HistoryResponse.model_validate(response.json()).to_domain()
        except (ValidationError, ValueError) as exc:
            raise StreamTransportError("Conversation history was malformed.") from exc

    @asynccontextmanager
    async def stream_chat(
        self,
        content: str,
        conversation_id: str,
        model: str,
        attachment_ids: list[str],
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open ``POST <chat_path>`` and yield the raw body byte iterator.

        The body is yielded per underlying read; framing is left to the
        stream decoder.
        """
        payload = {
            "content": content,
            "conversationId": conversation_id,
            "model": model,
            "attachments": attachment_ids,
        }
        try:
            async with self._http.stream("POST", self.chat_path, json=payload) as response:
                if response.is_error:
                    await response.aread()
                    raise StreamTransportError(
                        self._error_text(response, "Failed to send message")
                    )
                LOGGER.info(
                    "chat.stream.open",
                    extra={
                        "event": "chat.stream.open",
                        "conversation_id": conversation_id,
                        "model": model,
                    },
                )
                yield self._guarded_bytes(response)
        except httpx.HTTPError as exc:
            raise self._map_exception(exc) from exc

    async def _guarded_bytes(self, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for data in response.aiter_bytes():
                yield data
        except httpx.HTTPError as exc:
            raise StreamTransportError(f"Response stream dropped: {exc}") from exc

    async def upload_file(
        self,
        filename: str,
        data: bytes,
        mime_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> UserFile:
        """``POST <upload_path>`` as multipart ``file`` and return the stored file."""
        built = self._http.build_request(
            "POST", self.upload_path, files={"file": (filename, data, mime_type)}
        )
        body = b"".join(built.stream)  # type: ignore[arg-type]
        request = self._http.build_request(
            "POST",
            self.upload_path,
            headers={
                "Content-Type": built.headers["Content-Type"],
                "Content-Length": str(len(body)),
            },
            content=self._counting_body(body, on_progress),
        )
        try:
            response = await self._http.send(request)
        except httpx.HTTPError as exc:
            raise UploadFailedError(f"Upload failed: {self._map_exception(exc)}") from exc
        if response.is_error:
            raise UploadFailedError(self._error_text(response, "Upload failed"))
        try:
            return UploadResponse.model_validate(response.json()).file.to_domain()
        except (ValidationError, ValueError) as exc:
            raise UploadFailedError("Upload response did not include a file.") from exc

    async def _counting_body(
        self, body: bytes, on_progress: ProgressCallback | None
    ) -> AsyncIterator[bytes]:
        sent = 0
        for start in range(0, len(body), self.upload_chunk_bytes):
            piece = body[start : start + self.upload_chunk_bytes]
            sent += len(piece)
            if on_progress is not None:
                on_progress(sent, len(body))
            yield piece
