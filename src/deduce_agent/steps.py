"""
Reasoning steps, conversation turns and the text format shared with the model.

The model and the agent speak the same label vocabulary::

    Thought: <text>
    Action: <tool>
    Input: <input>
    Observation: <result for model>
    Answer: <text>

``render_steps`` / ``render_turn`` produce that text, ``parse_trace`` reads it
back without streaming.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class StepKind(str, Enum):
    """Kind of a reasoning step."""

    THOUGHT = "Thought"
    ACTION = "Action"
    OBSERVATION = "Observation"
    ANSWER = "Answer"


class Role(str, Enum):
    """Author of a conversation turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Action:
    """A tool invocation requested by the model."""

    tool: str
    input: str


@dataclass(frozen=True)
class ExecutionResult:
    """Result of a tool run: one string for people, one for the model."""

    result_for_human: str
    result_for_model: str

    @classmethod
    def from_text(cls, text: str) -> ExecutionResult:
        """Use the same text on both sides."""
        return cls(result_for_human=text, result_for_model=text)


StepValue = Union[str, Action, ExecutionResult]


@dataclass(frozen=True)
class ReasoningStep:
    """A tagged reasoning step. Steps are append-only within a turn."""

    kind: StepKind
    value: StepValue

    @classmethod
    def thought(cls, text: str) -> ReasoningStep:
        return cls(StepKind.THOUGHT, text)

    @classmethod
    def action(cls, tool: str, input: str) -> ReasoningStep:
        return cls(StepKind.ACTION, Action(tool=tool, input=input))

    @classmethod
    def observation(cls, result: ExecutionResult) -> ReasoningStep:
        return cls(StepKind.OBSERVATION, result)

    @classmethod
    def answer(cls, text: str) -> ReasoningStep:
        return cls(StepKind.ANSWER, text)

    def render(self) -> str:
        """Render in the model-facing format (no trailing newline)."""
        if self.kind is StepKind.ACTION:
            action = self.value
            assert isinstance(action, Action)
            return f"Action: {action.tool}\nInput: {action.input}"
        if self.kind is StepKind.OBSERVATION:
            result = self.value
            assert isinstance(result, ExecutionResult)
            return f"Observation: {result.result_for_model}"
        return f"{self.kind.value}: {self.value}"

    def __str__(self) -> str:
        # Display form shown to people.
        if self.kind is StepKind.ACTION:
            action = self.value
            assert isinstance(action, Action)
            return f'Action: {action.tool}("{action.input}")'
        if self.kind is StepKind.OBSERVATION:
            result = self.value
            assert isinstance(result, ExecutionResult)
            return f"Observation: {result.result_for_human}"
        return f"{self.kind.value}: {self.value}"

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.value, Action):
            value: Any = {"tool": self.value.tool, "input": self.value.input}
        elif isinstance(self.value, ExecutionResult):
            value = {
                "resultForHuman": self.value.result_for_human,
                "resultForModel": self.value.result_for_model,
            }
        else:
            value = self.value
        return {"name": self.kind.value, "value": value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReasoningStep:
        kind = StepKind(data["name"])
        value = data.get("value", "")
        if kind is StepKind.ACTION:
            return cls.action(value.get("tool", ""), value.get("input", ""))
        if kind is StepKind.OBSERVATION:
            return cls.observation(
                ExecutionResult(
                    result_for_human=value.get("resultForHuman", ""),
                    result_for_model=value.get("resultForModel", ""),
                )
            )
        return cls(kind, str(value))


@dataclass
class ConversationTurn:
    """A message in the conversation, optionally carrying reasoning steps."""

    role: Role
    content: str = ""
    steps: list[ReasoningStep] = field(default_factory=list)

    def render(self) -> str:
        """Content sent to the transport, derived from steps and answer text."""
        return render_turn(self)

    def rendered(self) -> ConversationTurn:
        """A step-less copy whose content is the rendered text."""
        return ConversationTurn(role=self.role, content=self.render())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.steps:
            data["steps"] = [s.to_dict() for s in self.steps]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationTurn:
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            steps=[ReasoningStep.from_dict(s) for s in data.get("steps") or []],
        )


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------

LABELS = ("Thought", "Action", "Input", "Observation", "Answer")

# Deepest indentation a marker may carry.
MARKER_INDENT = 16


def marker_pattern(*labels: str) -> re.Pattern[str]:
    """Pattern for line-initial ``Label:`` markers (leading blank lines allowed)."""
    names = "|".join(re.escape(label) for label in labels)
    return re.compile(rf"^[ \t]{{0,{MARKER_INDENT}}}({names}):", re.MULTILINE)


ANY_MARKER = marker_pattern(*LABELS)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def render_steps(steps: list[ReasoningStep]) -> str:
    """Render steps one per line block, each terminated by a newline."""
    return "".join(f"{step.render()}\n" for step in steps)


def render_turn(turn: ConversationTurn) -> str:
    """Render a turn for the transport.

    Assistant turns are rendered as their step trace followed by the answer;
    system and user turns are sent verbatim.
    """
    if turn.role is not Role.ASSISTANT:
        return turn.content
    content = render_steps(turn.steps)
    if turn.content:
        content += f"Answer: {turn.content}\n"
    return content


_QUOTE_LAYERS = ("```", "`", '"')


def strip_quotes(text: str) -> str:
    """Remove one matching layer of triple backtick, backtick or double quotes."""
    text = text.strip()
    for quote in _QUOTE_LAYERS:
        n = len(quote)
        if len(text) >= 2 * n and text.startswith(quote) and text.endswith(quote):
            return text[n:-n]
    return text


def parse_trace(text: str, strip_input_quotes: bool = False) -> list[ReasoningStep]:
    """Parse a complete rendered trace back into steps.

    An ``Action:`` section is paired with the ``Input:`` section that follows
    it; an action without one gets an empty input.
    """
    matches = list(ANY_MARKER.finditer(text))
    steps: list[ReasoningStep] = []
    pending_tool: str | None = None

    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        label = match.group(1)
        body = text[match.end():end].strip()

        if label == "Input":
            if pending_tool is None:
                continue
            if strip_input_quotes:
                body = strip_quotes(body)
            steps.append(ReasoningStep.action(pending_tool, body))
            pending_tool = None
            continue

        if pending_tool is not None:
            steps.append(ReasoningStep.action(pending_tool, ""))
            pending_tool = None

        if label == "Action":
            pending_tool = body
        elif label == "Observation":
            steps.append(ReasoningStep.observation(ExecutionResult.from_text(body)))
        elif label == "Thought":
            steps.append(ReasoningStep.thought(body))
        else:
            steps.append(ReasoningStep.answer(body))

    if pending_tool is not None:
        steps.append(ReasoningStep.action(pending_tool, ""))
    return steps
