"""
Per-cycle state shared by the parser and the agent loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from deduce_agent.errors import AgentError
from deduce_agent.steps import Action
from deduce_agent.transports.base import CancellationToken


class AgentState(str, Enum):
    """States of the streaming interpretation state machine."""

    START = "start"
    THINK = "think"
    ACTION = "action"
    BEFORE_EXECUTE = "before-execute"
    EXECUTE = "execute"
    BEGIN_ANSWER = "begin-answer"
    ANSWER = "answer"
    END = "end"


@dataclass
class TurnContext:
    """
    Everything one turn-cycle owns: the text buffer, the parser cursor,
    the state, the cancellation handle of the in-flight request and the
    execution scheduled by the parser.

    A fresh context is created for every cycle; nothing in it is shared with
    another cycle or another runner.
    """

    state: AgentState = AgentState.START
    buffer: str = ""
    cursor: int = 0  # end of the consumed prefix of ``buffer``
    scan_from: int = 0  # where the pending marker search resumes
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    execution: Action | None = None
    failure: AgentError | None = None

    def consume(self, offset: int) -> None:
        """Advance the cursor; the parser never moves it backwards."""
        if offset > self.cursor:
            self.cursor = offset
        self.scan_from = self.cursor

    def transition(self, state: AgentState, offset: int | None = None) -> None:
        self.state = state
        if offset is not None:
            self.consume(offset)
        else:
            self.scan_from = self.cursor

    def request_cancel(self, reason: str) -> None:
        """Cancel the model stream as part of normal control flow."""
        self.cancellation.cancel(expected=True, reason=reason)

    def end(self, reason: str = "turn ended") -> None:
        self.state = AgentState.END
        self.request_cancel(reason)

    def fail(self, error: AgentError) -> None:
        """Record a fatal error; the loop raises it once the stream has stopped."""
        if self.failure is None:
            self.failure = error
        self.end(str(error))

    @property
    def has_execution(self) -> bool:
        return self.execution is not None
