"""
Chat-completion transport backed by the OpenAI SDK.

Works with any OpenAI-compatible endpoint (set ``base_url``).
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx
from openai import AsyncOpenAI

from deduce_agent.config import AgentConfig
from deduce_agent.logging import get_logger
from deduce_agent.transports.base import (
    CancellationToken,
    CompletionTransport,
    Delta,
    DeltaCallback,
    ResponseState,
    TransportAbortedError,
    deliver,
)

if TYPE_CHECKING:
    from deduce_agent.steps import ConversationTurn

logger = get_logger("transports.openai")


class OpenAITransport(CompletionTransport):
    """
    Streams chat completions and honours a ``CancellationToken``.

    Every chunk is raced against the token, so a cancellation takes effect
    even while the server is still thinking; the HTTP stream is closed and
    ``TransportAbortedError`` is raised.

    Example:
        transport = OpenAITransport(AgentConfig.from_env())
        await transport.send_conversation(
            turns, cancellation=CancellationToken(), on_delta=print_delta
        )
    """

    def __init__(
        self,
        config: AgentConfig | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.config = config or AgentConfig.from_env()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            # trust_env=False keeps SOCKS proxy settings from the environment out
            http_client = httpx.AsyncClient(
                trust_env=False,
                timeout=httpx.Timeout(self.config.request_timeout, connect=30.0),
            )
            self._client = AsyncOpenAI(
                base_url=self.config.base_url,
                api_key=self.config.api_key,
                http_client=http_client,
            )
        return self._client

    def build_request(self, turns: Sequence[ConversationTurn]) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": turn.role.value, "content": turn.content} for turn in turns
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": True,
        }

    async def send_conversation(
        self,
        turns: Sequence[ConversationTurn],
        *,
        cancellation: CancellationToken,
        on_delta: DeltaCallback,
    ) -> None:
        cancellation.raise_if_cancelled()
        request = self.build_request(turns)
        logger.debug("Requesting %s with %d messages", self.config.model, len(turns))

        stream = await self._race(self.client.chat.completions.create(**request), cancellation)
        chunks = stream.__aiter__()
        finished = False
        try:
            while not finished:
                try:
                    chunk = await self._race(chunks.__anext__(), cancellation)
                except StopAsyncIteration:
                    break
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                content = (choice.delta.content if choice.delta else None) or ""
                finished = choice.finish_reason is not None
                if content or finished:
                    await deliver(on_delta, Delta(content), ResponseState(pending=not finished))
                cancellation.raise_if_cancelled()
            if not finished:
                # Server closed the stream without a finish reason.
                await deliver(on_delta, Delta(""), ResponseState(pending=False))
        finally:
            await stream.close()

    @staticmethod
    async def _race(awaitable: Any, cancellation: CancellationToken) -> Any:
        """Await ``awaitable`` unless ``cancellation`` fires first."""
        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(cancellation.wait())
        try:
            done, _ = await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
        if work in done:
            return work.result()
        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, StopAsyncIteration):
            pass
        cancellation.raise_if_cancelled()
        raise TransportAbortedError()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
