"""Events produced while a chat turn streams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from chatcore.progress import ProgressPayload


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class ContentDelta(StreamEvent):
    """A non-empty token from the content channel."""

    text: str = ""


@dataclass
class ProgressEvent(StreamEvent):
    """A validated progress payload."""

    payload: ProgressPayload | None = None


@dataclass
class DoneEvent(StreamEvent):
    """The ``[DONE]`` sentinel. Nothing after it is read."""


@dataclass
class TurnCompleteEvent(StreamEvent):
    """Final event; always the last event yielded for a turn."""

    result: Any = None


WireEvent = Union[ContentDelta, ProgressEvent, DoneEvent]
