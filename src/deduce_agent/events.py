"""
Events published by the agent loop.

The runner reports everything a host needs to render a turn through an
``EventBus``: each reasoning step as soon as it is parsed, answer text as it
streams, cycle boundaries, and the reconciled history after every tool run.

Example:
    from deduce_agent.events import STEP, CONTENT, EventBus

    bus = EventBus()

    @bus.on(STEP)
    def show_step(event):
        print(event.step)

    @bus.on(CONTENT)
    def show_text(event):
        print(event.content, end="")
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from deduce_agent.logging import get_logger
from deduce_agent.steps import ConversationTurn, ReasoningStep

logger = get_logger("events")


AGENT_START = "agent_start"
AGENT_END = "agent_end"
CYCLE_START = "cycle_start"
CYCLE_END = "cycle_end"
STEP = "step"
CONTENT = "content"
HISTORY_UPDATE = "history_update"


@dataclass
class StreamEvent:
    """
    Something the parser (or dispatcher) produced while interpreting a stream.

    ``type`` is ``"step"`` for a parsed reasoning step or ``"content"`` for
    answer text. ``unexpected`` marks raw text surfaced because the model
    never produced the marker the parser was waiting for.
    """

    type: str
    content: str = ""
    step: ReasoningStep | None = None
    unexpected: bool = False


@dataclass
class AgentStartEvent:
    """Emitted once before the first cycle of a turn."""

    history_length: int
    system_prompt: str


@dataclass
class AgentEndEvent:
    """Emitted once when a turn finishes, however it finishes."""

    cycles: int
    finish_reason: str = ""  # "complete", "aborted", "error"
    error: str | None = None


@dataclass
class CycleStartEvent:
    """Emitted before each request to the completion transport."""

    cycle: int
    message_count: int


@dataclass
class CycleEndEvent:
    """Emitted after each request; ``action`` is set when a tool run follows."""

    cycle: int
    state: str
    action: str | None = None


@dataclass
class StepEvent:
    """A reasoning step was added to the in-progress turn."""

    step: ReasoningStep
    cycle: int = 0


@dataclass
class ContentEvent:
    """Answer text (or unexpected raw output) streamed to the host."""

    content: str
    cycle: int = 0
    unexpected: bool = False


@dataclass
class HistoryUpdateEvent:
    """The reconciled history after a tool run or at the end of a turn."""

    history: list[ConversationTurn]
    final: bool = False


EventHandler = Callable[..., Any]


@dataclass
class _HandlerEntry:
    event: str
    handler: EventHandler
    priority: int = 0  # lower runs first


class EventBus:
    """
    Ordered event dispatch with sync or async handlers.

    ``emit`` awaits every handler in priority order before returning, so a
    handler doing persistence finishes before the loop moves on. A handler
    that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._handlers: list[_HandlerEntry] = []

    def on(
        self,
        event: str,
        handler: EventHandler | None = None,
        priority: int = 0,
    ) -> Callable[[], None] | Callable[[EventHandler], EventHandler]:
        """
        Register a handler. Returns an unsubscribe function, or acts as a
        decorator when ``handler`` is omitted.
        """
        if handler is not None:
            entry = _HandlerEntry(event=event, handler=handler, priority=priority)
            self._handlers.append(entry)

            def unsubscribe() -> None:
                try:
                    self._handlers.remove(entry)
                except ValueError:
                    pass

            return unsubscribe

        def decorator(fn: EventHandler) -> EventHandler:
            self.on(event, fn, priority=priority)
            return fn

        return decorator

    def off(self, event: str, handler: EventHandler) -> None:
        """Remove a specific handler."""
        self._handlers = [
            h for h in self._handlers if not (h.event == event and h.handler is handler)
        ]

    def clear(self, event: str | None = None) -> None:
        """Remove all handlers, or all handlers of one event."""
        if event is None:
            self._handlers.clear()
        else:
            self._handlers = [h for h in self._handlers if h.event != event]

    async def emit(self, event: str, data: Any = None) -> list[Any]:
        """Call the handlers of ``event`` and return their non-None results."""
        relevant = sorted(
            (h for h in self._handlers if h.event == event),
            key=lambda h: h.priority,
        )

        results: list[Any] = []
        for entry in relevant:
            try:
                result = entry.handler(data)
                if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                    result = await result
                if result is not None:
                    results.append(result)
            except Exception as e:
                logger.warning("Event handler error (event=%s): %s", event, e)
        return results

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def has_handlers(self, event: str) -> bool:
        return any(h.event == event for h in self._handlers)
