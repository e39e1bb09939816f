"""
Streaming step parser.

Interprets a completion as it streams in, one delta at a time, and turns the
labeled sections (``Thought:``, ``Action:``, ``Input:``, ``Observation:``,
``Answer:``) into reasoning steps and answer text.

The parser keeps no state of its own; everything lives in the ``TurnContext``
it is handed. It scans forward from a cursor and never reinterprets text it
has already consumed, so the total work over a response is linear in its
length even when deltas are single tokens.

State machine (``start`` is initial, ``end`` terminal)::

    start         Thought: -> think | Action: -> action | Answer: -> begin-answer
    think         Action: -> action | Answer: -> begin-answer   (emit Thought)
    action        Observation: -> before-execute  (emit Action, cancel stream)
    before-execute  ignore deltas until the loop runs the tool
    execute       Thought: -> think | Action: -> action | Answer: -> begin-answer
    begin-answer  emit text after Answer: -> answer | end
    answer        emit deltas -> end when the stream closes
    end           pass deltas through

A stream that closes while ``start``, ``think`` or ``execute`` still waits for
a marker ends the turn with the raw buffer surfaced as unexpected content.
"""

from __future__ import annotations

import re

from deduce_agent.errors import MissingInputError
from deduce_agent.events import StreamEvent
from deduce_agent.logging import get_logger
from deduce_agent.steps import (
    LABELS,
    MARKER_INDENT,
    Action,
    ReasoningStep,
    marker_pattern,
    strip_quotes,
)
from deduce_agent.turn import AgentState, TurnContext

logger = get_logger("parser")

_OPENING = marker_pattern("Thought", "Action", "Answer")
_AFTER_THOUGHT = marker_pattern("Action", "Answer")
_AFTER_OBSERVATION = marker_pattern("Thought", "Action", "Answer")
_INPUT = marker_pattern("Input")
_OBSERVATION = marker_pattern("Observation")

# A marker is at most this far from the start of its line.
_MARKER_WINDOW = max(len(label) for label in LABELS) + 1 + MARKER_INDENT

_NEXT_STATE = {
    "Thought": AgentState.THINK,
    "Action": AgentState.ACTION,
    "Answer": AgentState.BEGIN_ANSWER,
}


def find_between(
    buffer: str,
    start: re.Pattern[str] | None,
    end: re.Pattern[str] | None = None,
    pos: int = 0,
) -> str | None:
    """
    Return the trimmed text between the first ``start`` marker at or after
    ``pos`` and the first ``end`` marker after it.

    A ``start`` of None means the text begins at ``pos`` itself, for a
    section whose marker the cursor has already consumed. Without an ``end``
    pattern, or when it has not arrived yet, the text runs to the end of the
    buffer. Returns None when ``start`` is not found.
    """
    begin = pos
    if start is not None:
        match = start.search(buffer, pos)
        if match is None:
            return None
        begin = match.end()
    if end is not None:
        stop = end.search(buffer, begin)
        if stop is not None:
            return buffer[begin:stop.start()].strip()
    return buffer[begin:].strip()


def _resume_offset(buffer: str, scan_from: int) -> int:
    """Earliest offset where a marker not found yet could still start."""
    newline = buffer.rfind("\n", scan_from)
    line_start = newline + 1 if newline != -1 else scan_from
    if len(buffer) - line_start > _MARKER_WINDOW:
        return len(buffer)
    return line_start


class StepParser:
    """Drives a ``TurnContext`` through the state machine, one delta at a time."""

    def feed(self, ctx: TurnContext, text: str, pending: bool) -> list[StreamEvent]:
        """
        Append ``text`` to the buffer and run every transition it enables.

        Args:
            ctx: Context of the current cycle (mutated)
            text: Delta content, possibly empty
            pending: False when this is the last delta of the response

        Returns:
            Events to publish, in order
        """
        if text:
            ctx.buffer += text
        events: list[StreamEvent] = []
        while self._advance(ctx, pending, events):
            pass
        return events

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _advance(self, ctx: TurnContext, pending: bool, events: list[StreamEvent]) -> bool:
        """Apply at most one transition. Returns True when the state changed."""
        state = ctx.state
        if state is AgentState.START:
            return self._await_marker(ctx, _OPENING, pending, events)
        if state is AgentState.THINK:
            return self._think(ctx, pending, events)
        if state is AgentState.ACTION:
            return self._action(ctx, pending, events)
        if state is AgentState.BEFORE_EXECUTE:
            return False
        if state is AgentState.EXECUTE:
            return self._await_marker(ctx, _AFTER_OBSERVATION, pending, events)
        if state is AgentState.BEGIN_ANSWER:
            return self._begin_answer(ctx, pending, events)
        if state is AgentState.ANSWER:
            self._emit_rest(ctx, events)
            if not pending:
                self._finish(ctx)
                return True
            return False
        # end: pass through
        self._emit_rest(ctx, events)
        return False

    def _await_marker(
        self,
        ctx: TurnContext,
        pattern: re.Pattern[str],
        pending: bool,
        events: list[StreamEvent],
    ) -> bool:
        match = self._search(ctx, pattern)
        if match is not None:
            self._set(ctx, _NEXT_STATE[match.group(1)], match.end())
            return True
        if not pending:
            self._unexpected(ctx, events)
            return True
        return False

    def _think(self, ctx: TurnContext, pending: bool, events: list[StreamEvent]) -> bool:
        match = self._search(ctx, _AFTER_THOUGHT)
        if match is None:
            if not pending:
                self._unexpected(ctx, events)
                return True
            return False
        thought = find_between(ctx.buffer, None, _AFTER_THOUGHT, pos=ctx.cursor)
        if thought:
            events.append(StreamEvent(type="step", step=ReasoningStep.thought(thought)))
        self._set(ctx, _NEXT_STATE[match.group(1)], match.end())
        return True

    def _action(self, ctx: TurnContext, pending: bool, events: list[StreamEvent]) -> bool:
        match = self._search(ctx, _OBSERVATION)
        if match is not None:
            boundary = match.start()
        elif not pending:
            # Stream stopped right before the observation, e.g. a stop sequence.
            boundary = len(ctx.buffer)
        else:
            return False

        region = ctx.buffer[:boundary]
        tool_text = find_between(region, None, _INPUT, pos=ctx.cursor) or ""
        tool = strip_quotes(tool_text.splitlines()[0] if tool_text else "").lower()
        raw_input = find_between(region, _INPUT, pos=ctx.cursor) or ""
        if not raw_input:
            logger.debug("Action %r has no input", tool)
            ctx.fail(MissingInputError(tool))
            return True

        tool_input = strip_quotes(raw_input)
        events.append(StreamEvent(type="step", step=ReasoningStep.action(tool, tool_input)))
        ctx.execution = Action(tool=tool, input=tool_input)
        self._set(ctx, AgentState.BEFORE_EXECUTE, boundary)
        # The model's own "Observation:" is imaginary; stop listening.
        ctx.request_cancel(f"action ready: {tool}")
        return True

    def _begin_answer(self, ctx: TurnContext, pending: bool, events: list[StreamEvent]) -> bool:
        text = ctx.buffer[ctx.cursor:].lstrip()
        if not text and pending:
            return False
        if text:
            events.append(StreamEvent(type="content", content=text))
        ctx.consume(len(ctx.buffer))
        if pending:
            self._set(ctx, AgentState.ANSWER)
        else:
            self._finish(ctx)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _search(ctx: TurnContext, pattern: re.Pattern[str]) -> re.Match[str] | None:
        match = pattern.search(ctx.buffer, ctx.scan_from)
        if match is None:
            ctx.scan_from = _resume_offset(ctx.buffer, ctx.scan_from)
        return match

    @staticmethod
    def _emit_rest(ctx: TurnContext, events: list[StreamEvent]) -> None:
        rest = ctx.buffer[ctx.cursor:]
        if rest:
            events.append(StreamEvent(type="content", content=rest))
        ctx.consume(len(ctx.buffer))

    @staticmethod
    def _finish(ctx: TurnContext, reason: str = "answer complete") -> None:
        logger.debug("%s -> end", ctx.state.value)
        ctx.end(reason)

    @staticmethod
    def _set(ctx: TurnContext, state: AgentState, offset: int | None = None) -> None:
        logger.debug("%s -> %s", ctx.state.value, state.value)
        ctx.transition(state, offset)

    def _unexpected(self, ctx: TurnContext, events: list[StreamEvent]) -> None:
        """The stream closed before the awaited marker: surface what we got."""
        logger.warning(
            "Model response ended in state %r without an expected marker",
            ctx.state.value,
        )
        raw = ctx.buffer.strip()
        if raw:
            events.append(StreamEvent(type="content", content=raw, unexpected=True))
        ctx.consume(len(ctx.buffer))
        self._finish(ctx, "unexpected response")
