"""Tools the agent can act with."""
from __future__ import annotations

from deduce_agent.config import AgentConfig
from deduce_agent.tools.browse import BrowseTool
from deduce_agent.tools.dispatcher import ToolDispatcher, normalize_result
from deduce_agent.tools.registry import FunctionTool, Tool, ToolRegistry
from deduce_agent.tools.script import ScriptTool
from deduce_agent.tools.search import SearchTool

__all__ = [
    "Tool",
    "FunctionTool",
    "ToolRegistry",
    "ToolDispatcher",
    "normalize_result",
    "SearchTool",
    "BrowseTool",
    "ScriptTool",
    "create_default_tools",
]


def create_default_tools(config: AgentConfig | None = None) -> list[Tool]:
    """Create the built-in tools enabled in ``config.tools``, in that order."""
    config = config or AgentConfig()
    factories = {
        "search": lambda: SearchTool(
            max_results=config.search_max_results,
        ),
        "browse": lambda: BrowseTool(max_chars=config.browse_max_chars),
        "eval": lambda: ScriptTool(timeout=config.script_timeout),
    }
    tools: list[Tool] = []
    for name in config.tools:
        factory = factories.get(name.lower())
        if factory is None:
            available = ", ".join(factories)
            raise ValueError(f"Unknown built-in tool '{name}'. Available: {available}")
        tools.append(factory())
    return tools
