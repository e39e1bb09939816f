"""Resolve and run the tool named by an ``Action`` step."""
from __future__ import annotations

import time

from deduce_agent.errors import ToolExecutionError, UnknownToolError
from deduce_agent.events import STEP, EventBus, StepEvent
from deduce_agent.logging import get_logger
from deduce_agent.steps import ExecutionResult, ReasoningStep
from deduce_agent.tools.registry import ToolOutput, ToolRegistry

logger = get_logger("tools.dispatcher")


def normalize_result(output: ToolOutput) -> ExecutionResult:
    """Accept an ``ExecutionResult`` or a plain string."""
    if isinstance(output, ExecutionResult):
        return output
    if isinstance(output, str):
        return ExecutionResult.from_text(output)
    raise TypeError(
        f"Tool returned {type(output).__name__}, expected ExecutionResult or str"
    )


class ToolDispatcher:
    """
    Executes actions against a ``ToolRegistry``.

    A successful run publishes an Observation step on the event bus before
    the result is returned. Errors are never swallowed and never retried.
    """

    def __init__(self, registry: ToolRegistry, events: EventBus | None = None) -> None:
        self.registry = registry
        self.events = events or EventBus()

    async def execute(self, tool_name: str, input: str, cycle: int = 0) -> ExecutionResult:
        """
        Run ``tool_name`` with ``input``.

        Raises:
            UnknownToolError: No tool matches the name
            ToolExecutionError: The tool raised or returned a bad value
        """
        tool = self.registry.get(tool_name)
        if tool is None:
            raise UnknownToolError(tool_name)

        logger.info("Executing action %s(%r)", tool.name, input)
        started = time.monotonic()
        try:
            result = normalize_result(await tool.execute(input))
        except Exception as e:
            logger.warning("Action %s failed: %s", tool.name, e)
            raise ToolExecutionError(tool.name, input, e) from e
        logger.debug(
            "Action %s finished in %.0fms (%d chars for model)",
            tool.name,
            (time.monotonic() - started) * 1000,
            len(result.result_for_model),
        )

        await self.events.emit(
            STEP, StepEvent(step=ReasoningStep.observation(result), cycle=cycle)
        )
        return result
