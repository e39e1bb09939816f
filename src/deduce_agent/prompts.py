"""
System prompt template.

The template is plain text with two placeholders:

- ``{{toolNames}}`` - comma-separated tool names
- ``{{tools}}`` - one ``"  name: description"`` entry per tool, separated by
  blank lines

It is rendered once when the runner is built.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path

from deduce_agent.tools.registry import Tool

TOOL_NAMES_PLACEHOLDER = "{{toolNames}}"
TOOLS_PLACEHOLDER = "{{tools}}"


def format_tool_names(tools: Iterable[Tool]) -> str:
    return ", ".join(t.name for t in tools)


def format_tool_descriptions(tools: Iterable[Tool]) -> str:
    return "\n\n".join(f"  {t.name}: {t.description_for_model}" for t in tools)


@dataclass
class PromptTemplate:
    """A prompt template and where it came from."""

    text: str
    source: Path | None = None

    @classmethod
    def default(cls) -> PromptTemplate:
        """The template bundled with the package."""
        text = resources.files("deduce_agent").joinpath("prompt.txt").read_text(
            encoding="utf-8"
        )
        return cls(text=text)

    @classmethod
    def from_file(cls, path: Path) -> PromptTemplate:
        path = Path(path)
        return cls(text=path.read_text(encoding="utf-8"), source=path)

    @property
    def placeholders(self) -> list[str]:
        """Placeholders present in the template."""
        return [
            p for p in (TOOL_NAMES_PLACEHOLDER, TOOLS_PLACEHOLDER) if p in self.text
        ]

    def render(self, tools: Iterable[Tool]) -> str:
        """Substitute every placeholder occurrence with the tool listing."""
        tools = list(tools)
        return self.text.replace(
            TOOL_NAMES_PLACEHOLDER, format_tool_names(tools)
        ).replace(TOOLS_PLACEHOLDER, format_tool_descriptions(tools))


def build_system_prompt(
    tools: Iterable[Tool],
    template: PromptTemplate | None = None,
) -> str:
    """Render ``template`` (the bundled one by default) for ``tools``."""
    return (template or PromptTemplate.default()).render(tools)
