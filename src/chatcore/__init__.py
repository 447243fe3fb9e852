from chatcore.correlator import ProgressCorrelator
from chatcore.events import ContentDelta, DoneEvent, ProgressEvent, TurnCompleteEvent
from chatcore.instrumentation import instrument, uninstrument
from chatcore.markdown import parse as parse_markdown
from chatcore.provider import ChatRequestError, OpenAICompatibleProvider
from chatcore.runner import ChatRunner, TurnOutcome, TurnResult
from chatcore.session import Session
from chatcore.streaming import StreamDecodeError, StreamDecoder

__all__ = [
    "ChatRequestError",
    "ChatRunner",
    "ContentDelta",
    "DoneEvent",
    "OpenAICompatibleProvider",
    "ProgressCorrelator",
    "ProgressEvent",
    "Session",
    "StreamDecodeError",
    "StreamDecoder",
    "TurnCompleteEvent",
    "TurnOutcome",
    "TurnResult",
    "instrument",
    "parse_markdown",
    "uninstrument",
]
