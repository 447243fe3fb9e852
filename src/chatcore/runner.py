import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum

import httpx
from openai import APIError

from chatcore.context import TurnCancelled, TurnContext
from chatcore.correlator import ProgressCorrelator, TokenAppended
from chatcore.events import (
    ContentDelta,
    ProgressEvent,
    StreamEvent,
    TurnCompleteEvent,
    WireEvent,
)
from chatcore.instrumentation import models_span, record_error, record_turn, turn_span
from chatcore.message import ChatMessage, MessageRole, MessageStatus
from chatcore.provider import ChatRequestError, ModelInfo, ModelProvider
from chatcore.session import Session
from chatcore.state import AssistantProgressState
from chatcore.streaming import StreamDecodeError, StreamDecoder

logger = logging.getLogger(__name__)


class TurnOutcome(Enum):
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class TurnResult:
    """The result of a single streamed turn."""

    turn_id: str
    outcome: TurnOutcome
    content: str = ""
    error: str | None = None


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class ChatRunner:
    """Drives chat turns for one session.

    The runner appends the user message and an assistant placeholder to
    the transcript, streams the response through a
    :class:`~chatcore.streaming.StreamDecoder`, appends content deltas to
    the placeholder and routes progress payloads to its
    :class:`~chatcore.correlator.ProgressCorrelator`.  Only one turn
    streams at a time; starting another stops the one in flight.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point.
    ``start()`` runs a turn as a task so it can be stopped from outside.

    Args:
        provider: Transport for chat requests and model listing.
        session: Transcript to continue. A fresh one is created if omitted.
        model: Model to request; blank lets the server choose.
    """

    def __init__(
        self,
        provider: ModelProvider,
        session: Session | None = None,
        model: str = "",
    ):
        self.provider = provider
        self.session = session or Session(session_id=str(uuid.uuid4()))
        self.model = model
        self.correlator = ProgressCorrelator()
        self.chat_error: str | None = None
        self.available_models: list[ModelInfo] = []
        self.models_error: str | None = None
        self.is_loading_models = False
        self._turn: TurnContext | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_streaming(self) -> bool:
        return self._turn is not None

    def can_send(self, text: str) -> bool:
        return bool(text.strip()) and not self.is_streaming

    def progress_for(self, message_id: str) -> AssistantProgressState | None:
        return self.correlator.get(message_id)

    async def run(self, text: str) -> TurnResult | None:
        """Run one turn to completion. Returns ``None`` for blank input."""
        result: TurnResult | None = None
        async for event in self.iter(text):
            if isinstance(event, TurnCompleteEvent):
                result = event.result
        return result

    def start(self, text: str) -> asyncio.Task:
        """Schedule a turn as a task, stopping any turn in flight."""
        self.stop()
        self._task = asyncio.create_task(self.run(text))
        return self._task

    async def iter(self, text: str) -> AsyncIterator[StreamEvent]:
        """Stream one turn, yielding wire events as they are decoded.

        The last event is always a :class:`TurnCompleteEvent`.
        """
        content = text.strip()
        if not content:
            return
        self.stop()
        self.chat_error = None

        self.session.transcript.append(ChatMessage(
            role=MessageRole.USER, content=content, status=MessageStatus.DONE,
        ))
        request = self.session.request_messages()
        assistant = ChatMessage(
            role=MessageRole.ASSISTANT, content="", status=MessageStatus.STREAMING,
        )
        self.session.transcript.append(assistant)

        turn = TurnContext(turn_id=assistant.id, model=self.model)
        self._turn = turn
        self.correlator.begin_turn(turn.turn_id)

        decoder = StreamDecoder()
        outcome = TurnOutcome.DONE
        failure: Exception | None = None
        async with turn_span(turn.model, turn.turn_id) as span:
            try:
                try:
                    async with aclosing(self.provider.stream_text(
                        request, model=turn.model, cancel=turn.token,
                    )) as chunks:
                        async for chunk in chunks:
                            try:
                                events = decoder.feed(chunk)
                            except StreamDecodeError as e:
                                for event in e.events:
                                    self._dispatch(turn, assistant, event)
                                    yield event
                                raise
                            for event in events:
                                self._dispatch(turn, assistant, event)
                                yield event
                            if decoder.finished:
                                break
                except (TurnCancelled, asyncio.CancelledError) as e:
                    if not turn.token.cancelled:
                        # Cancelled by someone other than stop(); propagate.
                        self._finish(turn, assistant, TurnOutcome.CANCELLED)
                        raise
                    if isinstance(e, asyncio.CancelledError) and turn.task_cancelled:
                        _current_task().uncancel()
                    outcome = TurnOutcome.CANCELLED
                except (StreamDecodeError, ChatRequestError, APIError, httpx.HTTPError) as e:
                    if turn.token.cancelled:
                        outcome = TurnOutcome.CANCELLED
                    else:
                        outcome, failure = TurnOutcome.ERROR, e
                        record_error(span, e)

                result = self._finish(turn, assistant, outcome, failure)
                record_turn(span, result, self.correlator.get(turn.turn_id))
            finally:
                # Consumer closed the iterator early, or an unexpected error.
                if self._turn is turn:
                    turn.token.cancel()
                    self._finish(turn, assistant, TurnOutcome.CANCELLED)
        yield TurnCompleteEvent(result=result)

    def stop(self) -> None:
        """Cancel the turn in flight, if any.

        Cancellation is not an error: the assistant message keeps its
        content and is marked done, and progress is finalized.
        """
        turn = self._turn
        if turn is None:
            return
        turn.token.cancel()
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            turn.task_cancelled = True
            task.cancel()
        message = self.session.find(turn.turn_id)
        if message is not None:
            self._finish(turn, message, TurnOutcome.CANCELLED)

    def clear(self) -> None:
        """Stop streaming and forget the conversation."""
        self.stop()
        self.session.transcript = []
        self.chat_error = None
        self.correlator.clear()

    async def load_models(self) -> list[ModelInfo]:
        """Fetch the model list; selects the first model if none is set.

        Independent of turns: safe to schedule while a turn streams.
        """
        self.is_loading_models = True
        self.models_error = None
        try:
            async with models_span() as span:
                try:
                    models = await self.provider.list_models()
                except (ChatRequestError, APIError, httpx.HTTPError) as e:
                    record_error(span, e)
                    self.models_error = _describe(e, "Unknown models request error.")
                    logger.warning(f"Model listing failed: {self.models_error}")
                    return []
        finally:
            self.is_loading_models = False

        self.available_models = models
        if models and not self.model:
            self.model = models[0].id
        return models

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _dispatch(self, turn: TurnContext, assistant: ChatMessage, event: WireEvent) -> None:
        if isinstance(event, ContentDelta):
            if self._turn is not turn:
                return
            assistant.content += event.text
            self.correlator.apply(turn.turn_id, TokenAppended(text=event.text))
        elif isinstance(event, ProgressEvent) and event.payload is not None:
            self.correlator.apply(turn.turn_id, event.payload)

    def _finish(
        self,
        turn: TurnContext,
        assistant: ChatMessage,
        outcome: TurnOutcome,
        failure: Exception | None = None,
    ) -> TurnResult:
        error = _describe(failure, "Unknown chat request error.") if failure else None
        result = TurnResult(
            turn_id=turn.turn_id, outcome=outcome,
            content=assistant.content, error=error,
        )
        if self._turn is not turn:
            return result

        self._turn = None
        self.correlator.finalize(turn.turn_id)
        if outcome is TurnOutcome.ERROR:
            self.chat_error = error
            if not assistant.content.strip():
                self.session.remove(assistant.id)
            else:
                assistant.status = MessageStatus.ERROR
        elif assistant.status is MessageStatus.STREAMING:
            assistant.status = MessageStatus.DONE
        logger.info(f"Turn {turn.turn_id} finished: {outcome.value}")
        return result


def _describe(e: Exception, fallback: str) -> str:
    message = getattr(e, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(e) or fallback
