"""Incremental decoding of a chat completion event stream.

The transport hands us text chunks at arbitrary boundaries.  The
:class:`StreamDecoder` buffers them, cuts complete blocks at blank lines
and turns each block into at most one wire event.
"""

from __future__ import annotations

import json
import logging

from chatcore.events import ContentDelta, DoneEvent, ProgressEvent, WireEvent
from chatcore.progress import parse_progress
from chatcore.sse import BLOCK_SEPARATOR, DONE_SENTINEL, SSEBlock, parse_block

logger = logging.getLogger(__name__)

PROGRESS_EVENT = "progress"
INVALID_PAYLOAD_MESSAGE = "Invalid streaming payload received from chat endpoint."


def preview(text: str, limit: int = 120) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


class StreamDecodeError(Exception):
    """Raised when a content payload cannot be decoded.

    A corrupt content chunk means the turn is broken.  ``events`` holds
    whatever was decoded from the same feed before the failure.
    """

    def __init__(self, message: str = INVALID_PAYLOAD_MESSAGE, events: list[WireEvent] | None = None):
        super().__init__(message)
        self.events = events or []


class StreamDecoder:
    """Turns text chunks into :data:`~chatcore.events.WireEvent` lists."""

    def __init__(self) -> None:
        self._buffer = ""
        self.finished = False

    def feed(self, chunk: str) -> list[WireEvent]:
        """Buffer *chunk* and decode every complete block.

        Returns the decoded events in order.  After ``[DONE]`` (or a
        decode error) the decoder is finished and ignores further input.
        """
        if self.finished:
            return []

        text = self._buffer + chunk
        # A trailing CR may be the first half of a CRLF split across chunks.
        held = ""
        if text.endswith("\r"):
            text, held = text[:-1], "\r"
        text = text.replace("\r\n", "\n").replace("\r", "\n")

        events: list[WireEvent] = []
        while not self.finished:
            index = text.find(BLOCK_SEPARATOR)
            if index < 0:
                break
            raw_block = text[:index].strip()
            text = text[index + len(BLOCK_SEPARATOR):]
            try:
                event = self._decode(parse_block(raw_block))
            except StreamDecodeError as e:
                self.finished = True
                self._buffer = ""
                e.events = events
                raise
            if event is not None:
                events.append(event)

        self._buffer = "" if self.finished else text + held
        return events

    @property
    def pending(self) -> str:
        """Text buffered after the last complete block."""
        return self._buffer

    def _decode(self, block: SSEBlock) -> WireEvent | None:
        logger.debug(
            f"event_block event={block.event} len={len(block.data)} "
            f"preview={preview(block.data)!r}"
        )
        if not block.data:
            return None
        if block.data == DONE_SENTINEL:
            self.finished = True
            return DoneEvent()

        try:
            parsed = json.loads(block.data)
        except json.JSONDecodeError as e:
            if block.event == PROGRESS_EVENT:
                logger.debug(f"Ignoring unparseable progress payload: {preview(block.data)!r}")
                return None
            logger.warning(f"Invalid content payload: {e}")
            raise StreamDecodeError() from e

        if block.event == PROGRESS_EVENT:
            payload = parse_progress(parsed)
            if payload is None:
                return None
            return ProgressEvent(payload=payload)

        token = _extract_token(parsed)
        if not token:
            return None
        return ContentDelta(text=token)


def _extract_token(parsed: object) -> str | None:
    """Return ``choices[0].delta.content`` when it is a string."""
    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None
