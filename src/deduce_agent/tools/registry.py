"""Tool contract and the registry the dispatcher resolves names against."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Iterator
from typing import Union

from deduce_agent.steps import ExecutionResult

ToolOutput = Union[ExecutionResult, str]


class Tool(ABC):
    """
    Base class for tools the model can call.

    A tool takes the raw ``Input:`` text of an action and returns an
    ``ExecutionResult`` (or a plain string used for both sides). It may raise;
    the dispatcher wraps the error.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @property
    @abstractmethod
    def description_for_model(self) -> str: ...

    @abstractmethod
    async def execute(self, input: str) -> ToolOutput: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FunctionTool(Tool):
    """Adapt a coroutine function ``async (input) -> ExecutionResult | str``."""

    def __init__(
        self,
        name: str,
        description_for_model: str,
        handler: Callable[[str], Awaitable[ToolOutput]],
        display_name: str | None = None,
    ) -> None:
        self._name = name
        self._description = description_for_model
        self._handler = handler
        self._display_name = display_name

    @property
    def name(self) -> str:
        return self._name

    @property
    def display_name(self) -> str:
        return self._display_name or super().display_name

    @property
    def description_for_model(self) -> str:
        return self._description

    async def execute(self, input: str) -> ToolOutput:
        return await self._handler(input)


class ToolRegistry:
    """
    Name -> tool lookup, filled once when the agent is built.

    Names are matched case-insensitively because the model may write
    ``Search``, ``search`` or ``SEARCH``.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        key = tool.name.lower()
        if not key:
            raise ValueError("Tool name must not be empty")
        if key in self._tools:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        self._tools[key] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name.strip().lower())

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
