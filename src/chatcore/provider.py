import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import httpx
from openai import NOT_GIVEN, APIStatusError, AsyncOpenAI
from pydantic import BaseModel

from chatcore.context import CancellationToken
from chatcore.message import Message

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/v1"


class ChatRequestError(Exception):
    """The chat endpoint rejected a request.

    ``message`` is taken from the error envelope when the response
    carries one, otherwise it names the status code.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ModelInfo(BaseModel):
    id: str


def error_message(body: Any, fallback: str) -> str:
    """Extract ``error.message`` from an error envelope.

    Accepts the full ``{"error": {...}}`` envelope or its inner object.
    """
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        body = body["error"]
    if not isinstance(body, dict):
        return fallback
    message = body.get("message")
    if isinstance(message, str) and message.strip():
        return message
    return fallback


def extract_models(payload: Any) -> list[ModelInfo]:
    """Read ``data[].id`` from a model listing, skipping invalid entries."""
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, list):
        return []
    models = []
    for item in data:
        if not isinstance(item, dict):
            continue
        model_id = item.get("id")
        if isinstance(model_id, str) and model_id.strip():
            models.append(ModelInfo(id=model_id))
    return models


class ModelProvider:
    def __init__(self):
        pass

    def stream_text(
            self,
            messages: list[Message],
            model: str = "",
            cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        raise NotImplementedError

    async def list_models(self) -> list[ModelInfo]:
        raise NotImplementedError


class OpenAICompatibleProvider(ModelProvider):
    """Streams chat completions from any OpenAI-compatible endpoint.

    The request asks for ``include_progress`` so the server interleaves
    ``event: progress`` blocks with the content stream.  The raw text of
    the response is handed back chunk by chunk; decoding is left to
    :class:`~chatcore.streaming.StreamDecoder`.

    Args:
        base_url: API root, e.g. ``http://localhost:8000/v1``. Falls back
            to ``CHATCORE_BASE_URL``.
        api_key: Falls back to ``CHATCORE_API_KEY``.
        timeout: Transport timeout in seconds.
        max_retries: Retries for connection errors and retryable statuses.
        http_client: Optional ``httpx.AsyncClient`` to send requests with.
    """

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            timeout: float = 600.0,
            max_retries: int = 2,
            http_client: httpx.AsyncClient | None = None,
    ):
        if not base_url:
            base_url = os.getenv("CHATCORE_BASE_URL", DEFAULT_BASE_URL)
        if not api_key:
            api_key = os.getenv("CHATCORE_API_KEY", "DUMMY")
        self.base_url = base_url.rstrip("/")
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key,
            max_retries=max_retries,
            timeout=timeout,
            http_client=http_client,
        )

    async def stream_text(
            self,
            messages: list[Message],
            model: str = "",
            cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        model = model.strip()
        message_dump = [m.model_dump() for m in messages]
        try:
            async with self.client.chat.completions.with_streaming_response.create(
                model=model or NOT_GIVEN,
                messages=message_dump,
                stream=True,
                extra_body={"include_progress": True},
            ) as response:
                chunks = response.iter_text().__aiter__()
                while True:
                    if cancel is not None:
                        cancel.raise_if_cancelled()
                    try:
                        chunk = await chunks.__anext__()
                    except StopAsyncIteration:
                        return
                    yield chunk
        except APIStatusError as e:
            logger.warning(f"Chat request failed with status {e.status_code}")
            raise ChatRequestError(
                error_message(e.body, f"Chat request failed with status {e.status_code}."),
                status_code=e.status_code,
            ) from e

    async def list_models(self) -> list[ModelInfo]:
        try:
            response = await self.client.get("/models", cast_to=httpx.Response)
        except APIStatusError as e:
            logger.warning(f"Models request failed with status {e.status_code}")
            raise ChatRequestError(
                error_message(e.body, f"Models request failed with status {e.status_code}."),
                status_code=e.status_code,
            ) from e
        try:
            payload = response.json()
        except ValueError:
            payload = None
        return extract_models(payload)
