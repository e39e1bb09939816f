"""Shared pytest fixtures for deduce-agent tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace

import pytest

from deduce_agent import AgentConfig, AgentRunner, EventBus
from deduce_agent.steps import ConversationTurn, ExecutionResult
from deduce_agent.tools import FunctionTool, Tool
from deduce_agent.transports.base import (
    CancellationToken,
    CompletionTransport,
    Delta,
    DeltaCallback,
    ResponseState,
    deliver,
)


class ScriptedTransport(CompletionTransport):
    """
    Replays canned responses, one per request.

    Each response is a list of chunks; the last chunk is delivered with
    ``pending=False``. An exception instance in place of a response is raised
    instead. Cancellation is checked before every chunk, like a real stream.
    """

    def __init__(self, *responses: Sequence[str] | BaseException) -> None:
        self.responses = list(responses)
        self.requests: list[list[ConversationTurn]] = []
        self.delivered: list[list[str]] = []
        self.closed = False

    async def send_conversation(
        self,
        turns: Sequence[ConversationTurn],
        *,
        cancellation: CancellationToken,
        on_delta: DeltaCallback,
    ) -> None:
        self.requests.append(list(turns))
        if not self.responses:
            raise AssertionError("no scripted response left")
        script = self.responses.pop(0)
        if isinstance(script, BaseException):
            raise script

        chunks = list(script) or [""]
        delivered: list[str] = []
        self.delivered.append(delivered)
        for i, chunk in enumerate(chunks):
            cancellation.raise_if_cancelled()
            delivered.append(chunk)
            await deliver(on_delta, Delta(chunk), ResponseState(pending=i < len(chunks) - 1))

    async def close(self) -> None:
        self.closed = True


class HangingTransport(CompletionTransport):
    """Delivers ``chunks`` and then waits until the request is cancelled."""

    def __init__(self, chunks: Sequence[str] = ("Thought: thinking",)) -> None:
        self.chunks = list(chunks)
        self.waiting = asyncio.Event()

    async def send_conversation(self, turns, *, cancellation, on_delta) -> None:
        for chunk in self.chunks:
            await deliver(on_delta, Delta(chunk), ResponseState(pending=True))
        self.waiting.set()
        await cancellation.wait()
        cancellation.raise_if_cancelled()


def chunked(text: str, size: int) -> list[str]:
    """Split ``text`` into chunks of ``size`` characters."""
    return [text[i:i + size] for i in range(0, len(text), size)] or [""]


def make_tool(name: str, reply: str | None = None, error: Exception | None = None) -> Tool:
    """A tool that records its inputs and answers with ``reply``."""
    calls: list[str] = []

    async def handler(input: str) -> ExecutionResult:
        calls.append(input)
        if error is not None:
            raise error
        text = reply if reply is not None else f"{name} result for {input}"
        return ExecutionResult(result_for_human=f"[{text}]", result_for_model=text)

    tool = FunctionTool(name, f"Use {name} to look things up.", handler)
    tool.calls = calls  # type: ignore[attr-defined]
    return tool


@pytest.fixture
def search_tool() -> Tool:
    return make_tool("search", reply="Paris is the capital of France.")


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig(model="test-model", base_url="http://localhost", api_key="test-key")


@pytest.fixture
def make_runner(search_tool: Tool, config: AgentConfig):
    """Build a runner over scripted responses with the ``search`` tool registered."""

    def factory(
        *responses: Sequence[str] | BaseException,
        tools: Sequence[Tool] | None = None,
        events: EventBus | None = None,
        **config_overrides,
    ) -> AgentRunner:
        cfg = replace(config, **config_overrides)
        transport = ScriptedTransport(*responses)
        return AgentRunner(
            transport,
            tools if tools is not None else [search_tool],
            cfg,
            events=events,
        )

    return factory
