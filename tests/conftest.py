import json

import httpx
import pytest

from chatcore.provider import OpenAICompatibleProvider
from chatcore.runner import ChatRunner
from chatcore.sse import DONE_SENTINEL, format_event


# ---------------------------------------------------------------------------
# Event block builders (mirrors the server's wire format)
# ---------------------------------------------------------------------------

def content_block(text: str) -> str:
    """An SSE block carrying one content token."""
    return format_event({"choices": [{"delta": {"content": text}}]})


def progress_block(**fields) -> str:
    """An ``event: progress`` block with the given payload fields."""
    return format_event(fields, event="progress")


def agent_stage(agent: str, stage: str = "started", timestamp: float = 1, **extra) -> str:
    return progress_block(
        type="agent_stage", timestamp=timestamp, agent=agent, stage=stage, **extra,
    )


def tool_start(agent: str, tool_name: str, timestamp: float = 2, **extra) -> str:
    return progress_block(
        type="tool_start", timestamp=timestamp, agent=agent, tool_name=tool_name, **extra,
    )


def tool_end(agent: str, tool_name: str, timestamp: float = 3, **extra) -> str:
    return progress_block(
        type="tool_end", timestamp=timestamp, agent=agent, tool_name=tool_name,
        status="done", **extra,
    )


DONE_BLOCK = format_event(DONE_SENTINEL)


# ---------------------------------------------------------------------------
# Mock HTTP server
# ---------------------------------------------------------------------------

async def _aiter_bytes(chunks, gate=None):
    for i, chunk in enumerate(chunks):
        if gate is not None and i == gate[0]:
            await gate[1].wait()
        if isinstance(chunk, Exception):
            raise chunk
        yield chunk.encode() if isinstance(chunk, str) else chunk


class MockServer:
    """Serves pre-queued responses through ``httpx.MockTransport``.

    No network calls.  Every request is recorded in ``requests``.
    """

    def __init__(self):
        self.responses: list[httpx.Response] = []
        self.requests: list[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def queue_stream(self, chunks, status: int = 200, gate=None) -> None:
        """Queue an event-stream response delivered as *chunks*.

        *gate* is ``(index, asyncio.Event)``: delivery pauses before
        chunk *index* until the event is set.  An exception in *chunks*
        is raised from the body when reached.
        """
        self.responses.append(httpx.Response(
            status,
            headers={"content-type": "text/event-stream"},
            content=_aiter_bytes(chunks, gate),
        ))

    def queue_json(self, payload, status: int = 200) -> None:
        self.responses.append(httpx.Response(status, json=payload))

    def queue_text(self, text: str, status: int = 200) -> None:
        self.responses.append(httpx.Response(status, text=text))

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def mock_server():
    return MockServer()


@pytest.fixture
def provider(mock_server):
    client = httpx.AsyncClient(transport=httpx.MockTransport(mock_server.handler))
    return OpenAICompatibleProvider(
        base_url="http://chat.test/v1",
        api_key="test-key",
        max_retries=0,
        http_client=client,
    )


@pytest.fixture
def runner(provider):
    return ChatRunner(provider=provider)
