"""Completion transport contract."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deduce_agent.steps import ConversationTurn


class TransportAbortedError(Exception):
    """Raised by a transport when its cancellation token fires mid-request."""

    def __init__(self, message: str = "Request aborted", expected: bool = False) -> None:
        super().__init__(message)
        self.expected = expected


@dataclass(frozen=True)
class Delta:
    """An incremental chunk of completion text (possibly empty)."""

    content: str = ""


@dataclass(frozen=True)
class ResponseState:
    """State of the response a delta belongs to."""

    pending: bool  # True while more content is expected


DeltaCallback = Callable[[Delta, ResponseState], "Awaitable[None] | None"]


class CancellationToken:
    """
    One-shot cancellation handle for a single model request.

    The first ``cancel()`` wins; its ``expected`` flag tells whether the
    cancellation was the agent's own deliberate control flow (discarding the
    model's imagined continuation) or came from outside.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._expected = False
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expected(self) -> bool:
        return self._expected

    def cancel(self, expected: bool = False, reason: str = "") -> None:
        if self._event.is_set():
            return
        self._expected = expected
        self.reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TransportAbortedError(
                self.reason or "Request aborted", expected=self._expected
            )


async def deliver(on_delta: DeltaCallback, delta: Delta, state: ResponseState) -> None:
    """Invoke a delta callback, awaiting it when it is a coroutine function."""
    result = on_delta(delta, state)
    if inspect.isawaitable(result):
        await result


class CompletionTransport(ABC):
    """
    Abstract chat-completion transport.

    Implementations stream the reply to ``turns`` through ``on_delta``: every
    content chunk arrives with ``pending=True`` and the response ends with
    exactly one ``pending=False`` delta. Each callback is awaited before the
    next chunk is delivered. When ``cancellation`` fires the call must stop
    and raise ``TransportAbortedError``.
    """

    @abstractmethod
    async def send_conversation(
        self,
        turns: Sequence[ConversationTurn],
        *,
        cancellation: CancellationToken,
        on_delta: DeltaCallback,
    ) -> None:
        ...

    async def close(self) -> None:
        """Release any resources held by the transport."""
        return None
