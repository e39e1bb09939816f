"""
Agent loop.

``AgentRunner`` drives one user turn through as many think/act cycles as the
model needs. Each cycle streams a completion through the parser; when the
parser schedules an action the stream is cancelled, the tool runs, and its
observation is fed back in the next request.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any

from deduce_agent.config import AgentConfig
from deduce_agent.errors import (
    AgentAbortedError,
    Cancelled,
    Completed,
    CycleLimitError,
    CycleOutcome,
    Failed,
    UnexpectedStateError,
)
from deduce_agent.events import (
    AGENT_END,
    AGENT_START,
    CONTENT,
    CYCLE_END,
    CYCLE_START,
    HISTORY_UPDATE,
    STEP,
    AgentEndEvent,
    AgentStartEvent,
    ContentEvent,
    CycleEndEvent,
    CycleStartEvent,
    EventBus,
    HistoryUpdateEvent,
    StepEvent,
    StreamEvent,
)
from deduce_agent.history import reconcile
from deduce_agent.logging import get_logger
from deduce_agent.parser import StepParser
from deduce_agent.prompts import PromptTemplate
from deduce_agent.steps import ConversationTurn, ReasoningStep, Role
from deduce_agent.tools import ToolDispatcher, ToolRegistry, create_default_tools
from deduce_agent.tools.registry import Tool
from deduce_agent.transports.base import (
    CompletionTransport,
    Delta,
    ResponseState,
    TransportAbortedError,
)
from deduce_agent.turn import AgentState, TurnContext

logger = get_logger("agent")


class AgentRunner:
    """
    Runs ReAct-style turns against a completion transport.

    Example:
        runner = AgentRunner(OpenAITransport(config), tools, config)

        @runner.events.on(CONTENT)
        def show(event):
            print(event.content, end="")

        reply = await runner.chat("How tall is the Eiffel tower in feet?")
        print(reply.steps, reply.content)
    """

    def __init__(
        self,
        transport: CompletionTransport,
        tools: Iterable[Tool] = (),
        config: AgentConfig | None = None,
        events: EventBus | None = None,
        template: PromptTemplate | None = None,
    ) -> None:
        self.transport = transport
        self.config = config or AgentConfig()
        self.events = events or EventBus()
        self.registry = ToolRegistry(tools)
        self.dispatcher = ToolDispatcher(self.registry, self.events)
        self.parser = StepParser()

        if template is None:
            template = (
                PromptTemplate.from_file(self.config.prompt_file)
                if self.config.prompt_file
                else PromptTemplate.default()
            )
        self.system_prompt = template.render(self.registry)

        self._history: list[ConversationTurn] = []
        self._context: TurnContext | None = None
        self._running = False
        self._abort_event = asyncio.Event()

    @classmethod
    def create(
        cls,
        config: AgentConfig | None = None,
        transport: CompletionTransport | None = None,
        **kwargs: Any,
    ) -> AgentRunner:
        """
        Create a runner with the built-in tools enabled in ``config``.

        Args:
            config: Agent configuration (read from the environment if omitted)
            transport: Completion transport (an ``OpenAITransport`` by default)
            **kwargs: Passed on to the constructor
        """
        from deduce_agent.transports.openai import OpenAITransport

        config = config or AgentConfig.from_env()
        transport = transport or OpenAITransport(config)
        return cls(transport, create_default_tools(config), config, **kwargs)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def context(self) -> TurnContext | None:
        """Context of the current (or last) cycle."""
        return self._context

    @property
    def state(self) -> AgentState | None:
        return self._context.state if self._context else None

    @property
    def is_running(self) -> bool:
        return self._running

    def get_history(self) -> list[ConversationTurn]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    # ------------------------------------------------------------------
    # Abort
    # ------------------------------------------------------------------

    @property
    def is_aborted(self) -> bool:
        return self._abort_event.is_set()

    def abort(self) -> None:
        """
        Abort the running turn.

        Cancels the in-flight model stream and makes ``run()`` raise
        ``AgentAbortedError``. Call ``reset_abort()`` before the next turn.
        """
        self._abort_event.set()
        if self._context is not None:
            self._context.cancellation.cancel(expected=False, reason="aborted by operator")

    def reset_abort(self) -> None:
        self._abort_event.clear()

    def _check_abort(self) -> None:
        if self._abort_event.is_set():
            raise AgentAbortedError("Agent operation aborted")

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def build_conversation(
        self,
        history: Sequence[ConversationTurn],
        pending: ConversationTurn | None = None,
    ) -> list[ConversationTurn]:
        """
        System prompt, then the rendered history.

        A non-empty ``pending`` assistant turn is folded into the history
        first, so the model sees every step of the turn so far as a single
        assistant message.
        """
        if pending is not None and (pending.steps or pending.content):
            history = reconcile(history, pending)
        turns = [ConversationTurn(role=Role.SYSTEM, content=self.system_prompt)]
        turns.extend(turn.rendered() for turn in history)
        return turns

    async def chat(self, user_input: str) -> ConversationTurn:
        """Append a user turn to the runner's history and answer it."""
        self._history = [
            *self._history,
            ConversationTurn(role=Role.USER, content=user_input),
        ]
        return await self.run(self._history)

    async def regenerate(self) -> ConversationTurn:
        """Drop the trailing assistant turn and answer the last user turn again."""
        history = list(self._history)
        while history and history[-1].role is Role.ASSISTANT:
            history.pop()
        if not history or history[-1].role is not Role.USER:
            raise ValueError("Nothing to regenerate: history has no user turn")
        self._history = history
        return await self.run(history)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self, history: Sequence[ConversationTurn]) -> ConversationTurn:
        """
        Answer the conversation in ``history``.

        Returns the assistant turn produced by this run: every reasoning
        step in order and the streamed answer as ``content``. On success the
        runner's history becomes ``history`` reconciled with that turn.

        Raises:
            AgentError: A fatal error ended the turn
            AgentAbortedError: ``abort()`` was called
            RuntimeError: A run is already in progress
        """
        if self._running:
            raise RuntimeError("AgentRunner is already running a turn")
        self._running = True

        prior = list(history)
        pending = ConversationTurn(role=Role.ASSISTANT)
        finish_reason = "complete"
        error_msg: str | None = None
        cycle = 0

        await self.events.emit(
            AGENT_START,
            AgentStartEvent(history_length=len(prior), system_prompt=self.system_prompt),
        )

        try:
            state = AgentState.START
            while True:
                self._check_abort()
                if cycle >= self.config.max_cycles:
                    raise CycleLimitError(self.config.max_cycles)

                ctx = TurnContext(state=state)
                self._context = ctx
                conversation = self.build_conversation(prior, pending)
                logger.debug(
                    "Cycle %d: %d messages, state %s", cycle, len(conversation), state.value
                )
                await self.events.emit(
                    CYCLE_START, CycleStartEvent(cycle=cycle, message_count=len(conversation))
                )

                outcome = await self._stream(ctx, conversation, pending, cycle)
                self._raise_for_outcome(ctx, outcome)

                action = ctx.execution
                await self.events.emit(
                    CYCLE_END,
                    CycleEndEvent(
                        cycle=cycle,
                        state=ctx.state.value,
                        action=action.tool if action else None,
                    ),
                )

                if action is None:
                    if ctx.state is not AgentState.END:
                        raise UnexpectedStateError(ctx.state.value)
                    break

                if ctx.state is not AgentState.BEFORE_EXECUTE:
                    raise UnexpectedStateError(ctx.state.value, "when executing action")
                ctx.transition(AgentState.EXECUTE)
                self._check_abort()

                result = await self.dispatcher.execute(action.tool, action.input, cycle=cycle)
                pending.steps.append(ReasoningStep.observation(result))
                await self.events.emit(
                    HISTORY_UPDATE,
                    HistoryUpdateEvent(history=reconcile(prior, pending), final=False),
                )

                state = AgentState.EXECUTE
                cycle += 1

            pending.content = pending.content.strip()
            self._history = reconcile(prior, pending)
            await self.events.emit(
                HISTORY_UPDATE, HistoryUpdateEvent(history=self.get_history(), final=True)
            )
            logger.info("Turn finished after %d cycle(s)", cycle + 1)
            return pending

        except AgentAbortedError:
            finish_reason = "aborted"
            raise

        except Exception as e:
            finish_reason = "error"
            error_msg = str(e)
            raise

        finally:
            if self._context is not None and finish_reason != "complete":
                self._context.state = AgentState.END
            self._running = False
            await self.events.emit(
                AGENT_END,
                AgentEndEvent(cycles=cycle + 1, finish_reason=finish_reason, error=error_msg),
            )

    async def _stream(
        self,
        ctx: TurnContext,
        conversation: list[ConversationTurn],
        pending: ConversationTurn,
        cycle: int,
    ) -> CycleOutcome:
        """Send one request and feed every delta through the parser."""

        async def on_delta(delta: Delta, response: ResponseState) -> None:
            if ctx.failure is not None:
                return
            for event in self.parser.feed(ctx, delta.content, response.pending):
                await self._publish(event, pending, cycle)

        try:
            await self.transport.send_conversation(
                conversation, cancellation=ctx.cancellation, on_delta=on_delta
            )
        except TransportAbortedError:
            expected = ctx.cancellation.expected and not self.is_aborted
            return Cancelled(expected=expected)
        except Exception as e:
            return Failed(e)
        return Completed()

    def _raise_for_outcome(self, ctx: TurnContext, outcome: CycleOutcome) -> None:
        if isinstance(outcome, Failed):
            logger.error("Completion request failed: %s", outcome.error)
            raise outcome.error
        if isinstance(outcome, Cancelled):
            if not outcome.expected:
                raise AgentAbortedError(ctx.cancellation.reason or "Agent operation aborted")
            logger.debug("Stream cancelled: %s", ctx.cancellation.reason)
        if ctx.failure is not None:
            raise ctx.failure

    async def _publish(
        self, event: StreamEvent, pending: ConversationTurn, cycle: int
    ) -> None:
        if event.type == "step" and event.step is not None:
            pending.steps.append(event.step)
            await self.events.emit(STEP, StepEvent(step=event.step, cycle=cycle))
        elif event.content:
            pending.content += event.content
            await self.events.emit(
                CONTENT,
                ContentEvent(content=event.content, cycle=cycle, unexpected=event.unexpected),
            )
