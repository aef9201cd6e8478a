"""Decoding of the chat response body into typed stream events.

The body is a sequence of newline-delimited records. Only records that start
with ``data: `` belong to the protocol; their remainder is JSON, except for
the literal ``[DONE]`` sentinel. The turn ends when the body ends, not when
the sentinel arrives.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
import codecs
from dataclasses import dataclass, field
import json
import logging
from typing import Any

from pydantic import ValidationError

from .exceptions import RecordParseError
from .models import Citation, TokenUsage
from .schemas import (
    STREAM_EVENT_TYPES,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    StartEvent,
    stream_event_adapter,
)

LOGGER = logging.getLogger(__name__)

RECORD_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

StreamEventType = ChunkEvent | ErrorEvent | StartEvent | DoneEvent


def parse_record(line: str) -> StreamEventType | None:
    """Parse one record into an event.

    Returns ``None`` for lines outside the protocol, the ``[DONE]`` sentinel,
    and well-formed frames of a type this client does not know.

    Raises:
        RecordParseError: when a ``data:`` payload is not a valid frame.
    """
    line = line.rstrip("\r")
    if not line.startswith(RECORD_PREFIX):
        return None
    payload = line[len(RECORD_PREFIX) :]
    if payload == DONE_SENTINEL:
        return None
    try:
        raw: Any = json.loads(payload)
    except ValueError as exc:
        raise RecordParseError(f"Malformed record: {exc}") from exc
    if not isinstance(raw, dict) or raw.get("type") not in STREAM_EVENT_TYPES:
        return None
    try:
        return stream_event_adapter.validate_python(raw)
    except ValidationError as exc:
        raise RecordParseError(f"Invalid {raw.get('type')} frame: {exc}") from exc


class MessageStreamDecoder:
    """Incremental decoder from body reads to stream events.

    With ``buffer_partial_lines`` (the default) the trailing fragment of each
    read is held back and prepended to the next read, so records split across
    reads are reassembled. With it off, every read is split on its own and a
    record that straddles a read boundary fails to parse and is dropped.
    Each loss is logged at debug level.
    """

    def __init__(self, *, buffer_partial_lines: bool = True) -> None:
        self.buffer_partial_lines = buffer_partial_lines
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._fragment = ""
        self.saw_done_sentinel = False
        self.records_seen = 0
        self.records_dropped = 0

    def feed(self, data: bytes) -> list[StreamEventType]:
        """Decode one underlying read and return the events it completes."""
        text = self._decoder.decode(data)
        if not self.buffer_partial_lines:
            return self._parse_lines(text.split("\n"))

        text = self._fragment + text
        lines = text.split("\n")
        self._fragment = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> list[StreamEventType]:
        """Decode whatever is left once the body has ended."""
        tail = self._decoder.decode(b"", final=True)
        remainder = self._fragment + tail
        self._fragment = ""
        if not remainder:
            return []
        return self._parse_lines(remainder.split("\n"))

    async def decode(self, reads: AsyncIterable[bytes]) -> AsyncIterator[StreamEventType]:
        """Yield events from an async iterable of body reads until it ends."""
        async for data in reads:
            for event in self.feed(data):
                yield event
        for event in self.flush():
            yield event

    def _parse_lines(self, lines: list[str]) -> list[StreamEventType]:
        events: list[StreamEventType] = []
        for line in lines:
            if not line.strip():
                continue
            if line.rstrip("\r") == RECORD_PREFIX + DONE_SENTINEL:
                self.saw_done_sentinel = True
                LOGGER.debug(
                    "stream.done_sentinel", extra={"event": "stream.done_sentinel"}
                )
                continue
            try:
                event = parse_record(line)
            except RecordParseError as exc:
                self.records_dropped += 1
                LOGGER.debug(
                    "stream.record.dropped",
                    extra={
                        "event": "stream.record.dropped",
                        "reason": str(exc),
                        "buffered": self.buffer_partial_lines,
                    },
                )
                continue
            if event is not None:
                self.records_seen += 1
                events.append(event)
        return events


@dataclass
class StreamAccumulator:
    """Fold stream events into the assistant message's running state.

    Once an ``error`` event has been applied the accumulator is terminated
    and ignores every later event.
    """

    content: str = ""
    is_error: bool = False
    terminated: bool = False
    tokens: TokenUsage | None = None
    citations: list[Citation] = field(default_factory=list)
    conversation_id: str | None = None
    server_message_id: str | None = None

    def apply(self, event: StreamEventType) -> bool:
        """Apply ``event`` and return whether the visible message changed."""
        if self.terminated:
            return False
        if isinstance(event, ChunkEvent):
            self.content += event.content
            return True
        if isinstance(event, ErrorEvent):
            self.content = event.error
            self.is_error = True
            self.terminated = True
            return True
        if isinstance(event, StartEvent):
            self.conversation_id = event.conversation_id
            return False
        if isinstance(event, DoneEvent):
            self.server_message_id = event.message_id
            if event.tokens is not None:
                self.tokens = event.tokens.to_domain()
            if event.citations:
                self.citations = [c.to_domain() for c in event.citations]
            return True
        return False
