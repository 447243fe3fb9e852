from __future__ import annotations

import asyncio
from dataclasses import dataclass, field


class TurnCancelled(Exception):
    """Raised at a suspension point once the turn's token is cancelled.

    Cancellation is an outcome, not a failure: callers report it as
    ``cancelled`` and never surface it as an error.
    """


class CancellationToken:
    """Cooperative cancellation signal passed down a turn's call chain."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelled()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class TurnContext:
    """Identity and cancellation state of the turn being streamed.

    Args:
        turn_id: Id of the assistant message the turn writes into.
        model: Model requested for the turn (may be blank).
        token: Cancelled when the turn is stopped or superseded.
        task_cancelled: Set when stopping also cancelled the task running
            the turn; that task then swallows its ``CancelledError``.
    """

    turn_id: str
    model: str = ""
    token: CancellationToken = field(default_factory=CancellationToken)
    task_cancelled: bool = False
