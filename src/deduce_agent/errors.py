"""
Error taxonomy and cycle outcomes.

Fatal conditions are ``AgentError`` subclasses and end the turn. The two
non-fatal conditions (the loop's own stream cancellation and a model
response that never reached a marker) are not errors at all: the first is a
``Cancelled(expected=True)`` outcome, the second is surfaced as content.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


class AgentError(Exception):
    """Base class for errors that end an agent turn."""

    kind = "agent_error"


class MissingInputError(AgentError):
    """An ``Action:`` section was parsed without a usable ``Input:`` section."""

    kind = "missing_input"

    def __init__(self, tool: str) -> None:
        super().__init__(f"Missing input for action: {tool}.")
        self.tool = tool


class UnknownToolError(AgentError):
    """The model asked for a tool that is not registered."""

    kind = "unknown_tool"

    def __init__(self, tool: str) -> None:
        super().__init__(f"Can not find action: {tool}.")
        self.tool = tool


class ToolExecutionError(AgentError):
    """A registered tool raised while executing."""

    kind = "tool_execution"

    def __init__(self, tool: str, input: str, cause: BaseException) -> None:
        super().__init__(f"Failed to execute action: {tool}({input}): {cause}.")
        self.tool = tool
        self.input = input
        self.cause = cause


class UnexpectedStateError(AgentError):
    """A model stream ended with neither a scheduled execution nor a final answer."""

    kind = "unexpected_state"

    def __init__(self, state: str, detail: str = "after end of message") -> None:
        super().__init__(f"Unexpected state {detail}: {state}.")
        self.state = state


class CycleLimitError(AgentError):
    """The turn needed more model round trips than ``max_cycles`` allows."""

    kind = "cycle_limit"

    def __init__(self, max_cycles: int) -> None:
        super().__init__(f"Turn did not finish within {max_cycles} cycles.")
        self.max_cycles = max_cycles


class AgentAbortedError(Exception):
    """Raised when the operator aborts a running turn via ``AgentRunner.abort()``."""

    pass


# ---------------------------------------------------------------------------
# Cycle outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Completed:
    """The transport delivered the whole response."""


@dataclass(frozen=True)
class Cancelled:
    """The stream was cancelled; ``expected`` is True when the loop did it itself."""

    expected: bool


@dataclass(frozen=True)
class Failed:
    """The cycle failed with a fatal error."""

    error: BaseException

    @property
    def kind(self) -> str:
        return getattr(self.error, "kind", type(self.error).__name__)


CycleOutcome = Union[Completed, Cancelled, Failed]
