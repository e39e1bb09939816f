"""Tests for the agent loop."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import HangingTransport, make_tool
from deduce_agent import AgentConfig, AgentRunner
from deduce_agent.errors import (
    AgentAbortedError,
    CycleLimitError,
    MissingInputError,
    ToolExecutionError,
    UnexpectedStateError,
    UnknownToolError,
)
from deduce_agent.events import (
    AGENT_END,
    AGENT_START,
    CONTENT,
    CYCLE_START,
    HISTORY_UPDATE,
    STEP,
    EventBus,
)
from deduce_agent.prompts import PromptTemplate
from deduce_agent.steps import (
    ConversationTurn,
    ExecutionResult,
    ReasoningStep,
    Role,
    StepKind,
)
from deduce_agent.transports.base import CompletionTransport, Delta, ResponseState, deliver
from deduce_agent.turn import AgentState


SEARCH_CYCLE = [
    "Thought: I should look it up\nAction: search\n",
    "Input: capital of France\n",
    "Observation: Lyon\n",
    "Thought: made up\n",
    "Answer: Lyon",
]
ANSWER_CYCLE = ["Thought: found it\n", "Answer: The capital", " is Paris.", ""]


def _collect(bus: EventBus, *names: str) -> dict[str, list]:
    seen: dict[str, list] = {name: [] for name in names}
    for name in names:
        bus.on(name, seen[name].append)
    return seen


class TruncatingTransport(CompletionTransport):
    """Never sends the closing delta."""

    def __init__(self, text: str) -> None:
        self.text = text

    async def send_conversation(self, turns, *, cancellation, on_delta) -> None:
        await deliver(on_delta, Delta(self.text), ResponseState(pending=True))


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_system_prompt_lists_tools(self, make_runner) -> None:
        runner = make_runner()
        assert "search: Use search to look things up." in runner.system_prompt
        assert "{{tools}}" not in runner.system_prompt

    def test_prompt_file(self, make_runner, tmp_path: Path) -> None:
        path = tmp_path / "prompt.txt"
        path.write_text("Tools: {{toolNames}}")
        runner = make_runner(prompt_file=path)
        assert runner.system_prompt == "Tools: search"

    def test_explicit_template(self, search_tool, config) -> None:
        runner = AgentRunner(
            TruncatingTransport(""), [search_tool], config, template=PromptTemplate("{{tools}}")
        )
        assert runner.system_prompt == "  search: Use search to look things up."

    def test_duplicate_tool_names_rejected(self, config) -> None:
        with pytest.raises(ValueError):
            AgentRunner(TruncatingTransport(""), [make_tool("a"), make_tool("A")], config)


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


class TestDirectAnswer:
    @pytest.mark.asyncio
    async def test_answer_without_tools(self, make_runner) -> None:
        runner = make_runner(["Thought: easy\n", "Answer: 4", ""])

        reply = await runner.chat("What is 2+2?")

        assert reply.role is Role.ASSISTANT
        assert reply.content == "4"
        assert reply.steps == [ReasoningStep.thought("easy")]
        assert runner.state is AgentState.END

        request = runner.transport.requests[0]
        assert [t.role for t in request] == [Role.SYSTEM, Role.USER]
        assert request[1].content == "What is 2+2?"

    @pytest.mark.asyncio
    async def test_history_after_turn(self, make_runner) -> None:
        runner = make_runner(["Answer: 4"])
        await runner.chat("2+2?")

        history = runner.get_history()
        assert [t.role for t in history] == [Role.USER, Role.ASSISTANT]
        assert history[1].content == "4"

    @pytest.mark.asyncio
    async def test_answer_is_stripped(self, make_runner) -> None:
        runner = make_runner(["Answer: 4  \n", "\n"])
        reply = await runner.chat("2+2?")
        assert reply.content == "4"

    @pytest.mark.asyncio
    async def test_content_events_stream(self, make_runner) -> None:
        bus = EventBus()
        seen = _collect(bus, CONTENT)
        runner = make_runner(ANSWER_CYCLE, events=bus)

        await runner.chat("capital?")

        assert [e.content for e in seen[CONTENT]] == ["The capital", " is Paris."]


class TestToolUse:
    @pytest.mark.asyncio
    async def test_action_then_answer(self, make_runner, search_tool) -> None:
        runner = make_runner(SEARCH_CYCLE, ANSWER_CYCLE)

        reply = await runner.chat("What is the capital of France?")

        assert search_tool.calls == ["capital of France"]
        assert [s.kind for s in reply.steps] == [
            StepKind.THOUGHT,
            StepKind.ACTION,
            StepKind.OBSERVATION,
            StepKind.THOUGHT,
        ]
        assert reply.steps[2].value == ExecutionResult(
            result_for_human="[Paris is the capital of France.]",
            result_for_model="Paris is the capital of France.",
        )
        assert reply.content == "The capital is Paris."

    @pytest.mark.asyncio
    async def test_imaginary_observation_is_discarded(self, make_runner) -> None:
        runner = make_runner(SEARCH_CYCLE, ANSWER_CYCLE)
        reply = await runner.chat("capital?")

        # The stream is cancelled once the observation marker arrives.
        assert runner.transport.delivered[0] == SEARCH_CYCLE[:3]
        assert "Lyon" not in reply.content
        assert "made up" not in str(reply.steps)

    @pytest.mark.asyncio
    async def test_observation_is_sent_back(self, make_runner) -> None:
        runner = make_runner(SEARCH_CYCLE, ANSWER_CYCLE)
        await runner.chat("capital?")

        second = runner.transport.requests[1]
        assert [t.role for t in second] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
        assert second[2].content == (
            "Thought: I should look it up\n"
            "Action: search\n"
            "Input: capital of France\n"
            "Observation: Paris is the capital of France.\n"
        )

    @pytest.mark.asyncio
    async def test_multi_hop_keeps_one_assistant_turn(self, make_runner) -> None:
        second_search = [
            "Thought: check again\nAction: search\nInput: population of Paris\nObservation:",
        ]
        runner = make_runner(SEARCH_CYCLE, second_search, ANSWER_CYCLE)

        reply = await runner.chat("capital?")

        third = runner.transport.requests[2]
        assert [t.role for t in third] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
        assert third[2].content.count("Observation:") == 2
        assert len(reply.steps) == 7

        history = runner.get_history()
        assert len(history) == 2
        assert history[1].steps == reply.steps

    @pytest.mark.asyncio
    async def test_action_directly_after_observation(self, make_runner, search_tool) -> None:
        first = ["Thought: look\nAction: search\nInput: a\nObservation:"]
        second = ["Action: search\nInput: b\nObservation:"]
        runner = make_runner(first, second, ["Answer: done"])

        reply = await runner.chat("two lookups")

        assert search_tool.calls == ["a", "b"]
        assert reply.content == "done"
        assert [s.kind for s in reply.steps] == [
            StepKind.THOUGHT,
            StepKind.ACTION,
            StepKind.OBSERVATION,
            StepKind.ACTION,
            StepKind.OBSERVATION,
        ]

    @pytest.mark.asyncio
    async def test_history_published_after_each_tool_run(self, make_runner) -> None:
        bus = EventBus()
        seen = _collect(bus, HISTORY_UPDATE)
        runner = make_runner(SEARCH_CYCLE, ANSWER_CYCLE, events=bus)

        await runner.chat("capital?")

        updates = seen[HISTORY_UPDATE]
        assert [u.final for u in updates] == [False, True]
        interim = updates[0].history
        assert len(interim) == 2
        assert interim[1].steps[-1].kind is StepKind.OBSERVATION
        assert updates[1].history[1].content == "The capital is Paris."

    @pytest.mark.asyncio
    async def test_step_events_in_order(self, make_runner) -> None:
        bus = EventBus()
        seen = _collect(bus, STEP, CYCLE_START)
        runner = make_runner(SEARCH_CYCLE, ANSWER_CYCLE, events=bus)

        await runner.chat("capital?")

        assert [e.step.kind for e in seen[STEP]] == [
            StepKind.THOUGHT,
            StepKind.ACTION,
            StepKind.OBSERVATION,
            StepKind.THOUGHT,
        ]
        assert [e.cycle for e in seen[CYCLE_START]] == [0, 1]

    @pytest.mark.asyncio
    async def test_resumes_partial_assistant_turn(self, make_runner) -> None:
        partial = ConversationTurn(
            role=Role.ASSISTANT,
            steps=[
                ReasoningStep.action("search", "capital of France"),
                ReasoningStep.observation(ExecutionResult.from_text("Paris")),
            ],
        )
        runner = make_runner(["Answer: Paris"])

        await runner.run([ConversationTurn(role=Role.USER, content="capital?"), partial])

        history = runner.get_history()
        assert len(history) == 2
        assert history[1].steps == partial.steps
        assert history[1].content == "Paris"


# ---------------------------------------------------------------------------
# Non-fatal conditions
# ---------------------------------------------------------------------------


class TestUnexpectedResponse:
    @pytest.mark.asyncio
    async def test_raw_text_becomes_content(self, make_runner) -> None:
        bus = EventBus()
        seen = _collect(bus, CONTENT, AGENT_END)
        runner = make_runner(["Sorry, ", "I can't help with that."], events=bus)

        reply = await runner.chat("hi")

        assert reply.content == "Sorry, I can't help with that."
        assert seen[CONTENT][0].unexpected
        assert seen[AGENT_END][0].finish_reason == "complete"


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, make_runner) -> None:
        bus = EventBus()
        seen = _collect(bus, AGENT_END)
        runner = make_runner(["Action: weather\nInput: Paris\nObservation:"], events=bus)

        with pytest.raises(UnknownToolError, match="Can not find action: weather."):
            await runner.chat("weather?")

        assert seen[AGENT_END][0].finish_reason == "error"
        assert runner.state is AgentState.END
        assert [t.role for t in runner.get_history()] == [Role.USER]

    @pytest.mark.asyncio
    async def test_tool_failure(self, make_runner) -> None:
        broken = make_tool("search", error=RuntimeError("boom"))
        runner = make_runner(SEARCH_CYCLE, tools=[broken])

        with pytest.raises(ToolExecutionError) as exc_info:
            await runner.chat("capital?")

        assert str(exc_info.value) == (
            "Failed to execute action: search(capital of France): boom."
        )
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_missing_input(self, make_runner, search_tool) -> None:
        runner = make_runner(["Action: search\n", "Observation: x\n", "Answer: y"])

        with pytest.raises(MissingInputError):
            await runner.chat("capital?")

        assert search_tool.calls == []
        assert runner.transport.delivered[0] == ["Action: search\n", "Observation: x\n"]

    @pytest.mark.asyncio
    async def test_stream_without_closing_delta(self, config) -> None:
        runner = AgentRunner(TruncatingTransport("Thought: hmm"), [], config)

        with pytest.raises(UnexpectedStateError, match="think"):
            await runner.chat("hi")

    @pytest.mark.asyncio
    async def test_cycle_limit(self, make_runner) -> None:
        action = ["Action: search\nInput: again\nObservation:"]
        runner = make_runner(action, action, action, max_cycles=2)

        with pytest.raises(CycleLimitError):
            await runner.chat("loop forever")

        assert len(runner.transport.requests) == 2

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, make_runner) -> None:
        bus = EventBus()
        seen = _collect(bus, AGENT_END)
        runner = make_runner(ConnectionError("connection refused"), events=bus)

        with pytest.raises(ConnectionError):
            await runner.chat("hi")

        end = seen[AGENT_END][0]
        assert end.finish_reason == "error"
        assert end.error == "connection refused"

    @pytest.mark.asyncio
    async def test_runner_usable_after_error(self, make_runner) -> None:
        runner = make_runner(ConnectionError("down"), ["Answer: ok"])

        with pytest.raises(ConnectionError):
            await runner.chat("hi")
        reply = await runner.chat("again")

        assert reply.content == "ok"


# ---------------------------------------------------------------------------
# Abort and concurrency
# ---------------------------------------------------------------------------


class TestAbort:
    @pytest.mark.asyncio
    async def test_abort_cancels_stream(self, config) -> None:
        bus = EventBus()
        seen = _collect(bus, AGENT_END)
        transport = HangingTransport()
        runner = AgentRunner(transport, [], config, events=bus)

        task = asyncio.create_task(runner.chat("hi"))
        await transport.waiting.wait()
        runner.abort()

        with pytest.raises(AgentAbortedError):
            await task

        assert runner.context.cancellation.cancelled
        assert not runner.context.cancellation.expected
        assert seen[AGENT_END][0].finish_reason == "aborted"
        assert not runner.is_running

    @pytest.mark.asyncio
    async def test_abort_before_run(self, make_runner) -> None:
        runner = make_runner(["Answer: 4"])
        runner.abort()

        with pytest.raises(AgentAbortedError):
            await runner.chat("hi")
        assert runner.transport.requests == []

        runner.reset_abort()
        reply = await runner.chat("hi")
        assert reply.content == "4"

    @pytest.mark.asyncio
    async def test_concurrent_run_refused(self, config) -> None:
        transport = HangingTransport()
        runner = AgentRunner(transport, [], config)

        task = asyncio.create_task(runner.chat("hi"))
        await transport.waiting.wait()

        with pytest.raises(RuntimeError):
            await runner.run([])

        runner.abort()
        with pytest.raises(AgentAbortedError):
            await task


# ---------------------------------------------------------------------------
# History helpers
# ---------------------------------------------------------------------------


class TestHistoryHelpers:
    @pytest.mark.asyncio
    async def test_regenerate(self, make_runner) -> None:
        runner = make_runner(["Answer: 4"], ["Answer: four"])
        await runner.chat("2+2?")

        reply = await runner.regenerate()

        assert reply.content == "four"
        assert runner.transport.requests[1] == runner.transport.requests[0]
        history = runner.get_history()
        assert [t.role for t in history] == [Role.USER, Role.ASSISTANT]
        assert history[1].content == "four"

    @pytest.mark.asyncio
    async def test_regenerate_after_failed_chat(self, make_runner) -> None:
        runner = make_runner(ConnectionError("down"), ["Answer: 4"])

        with pytest.raises(ConnectionError):
            await runner.chat("2+2?")
        assert [t.content for t in runner.get_history()] == ["2+2?"]

        reply = await runner.regenerate()

        assert reply.content == "4"
        assert [t.role for t in runner.get_history()] == [Role.USER, Role.ASSISTANT]

    @pytest.mark.asyncio
    async def test_regenerate_without_user_turn(self, make_runner) -> None:
        runner = make_runner()
        with pytest.raises(ValueError):
            await runner.regenerate()

    @pytest.mark.asyncio
    async def test_clear_history(self, make_runner) -> None:
        runner = make_runner(["Answer: 4"])
        await runner.chat("2+2?")
        runner.clear_history()
        assert runner.get_history() == []

    @pytest.mark.asyncio
    async def test_agent_start_event(self, make_runner) -> None:
        bus = EventBus()
        seen = _collect(bus, AGENT_START)
        runner = make_runner(["Answer: 4"], events=bus)

        await runner.chat("2+2?")

        start = seen[AGENT_START][0]
        assert start.history_length == 1
        assert start.system_prompt == runner.system_prompt


def test_create_uses_builtin_tools() -> None:
    config = AgentConfig(api_key="k", tools=["eval"])
    runner = AgentRunner.create(config, transport=TruncatingTransport(""))
    assert runner.registry.names == ["eval"]
