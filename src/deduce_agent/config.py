"""
Configuration for the agent runner.

Built programmatically, from environment variables (``.env`` files are
honoured) or from YAML.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_TOOLS = ["search", "browse", "eval"]


@dataclass
class AgentConfig:
    """
    Settings for ``AgentRunner`` and the bundled transport and tools.

    Example YAML:
        model: gpt-4o-mini
        temperature: 0
        max_cycles: 10
        prompt_file: ./prompt.txt
        tools:
          - search
          - eval
        script_timeout: 10
    """

    # LLM settings
    model: str = "gpt-4o-mini"
    base_url: str | None = None  # Defaults to OPENAI_BASE_URL
    api_key: str | None = None  # Defaults to OPENAI_API_KEY
    temperature: float = 0.0
    max_tokens: int = 2048
    request_timeout: float = 300.0

    # Loop behaviour
    max_cycles: int = 20  # Model round trips allowed in one turn
    prompt_file: Path | None = None  # Overrides the bundled prompt template

    # Built-in tools
    tools: list[str] = field(default_factory=lambda: list(DEFAULT_TOOLS))
    script_timeout: float = 30.0
    browse_max_chars: int = 3000
    search_max_results: int = 10

    @classmethod
    def from_env(cls, **overrides: Any) -> AgentConfig:
        """Create config from environment variables (after loading ``.env``)."""
        load_dotenv()
        values: dict[str, Any] = {
            "base_url": os.environ.get("OPENAI_BASE_URL"),
            "api_key": os.environ.get("OPENAI_API_KEY"),
        }
        if os.environ.get("DEDUCE_MODEL"):
            values["model"] = os.environ["DEDUCE_MODEL"]
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentConfig:
        """Create config from a dictionary; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        values = dict(data)
        if values.get("prompt_file"):
            values["prompt_file"] = Path(values["prompt_file"]).expanduser()
        if "tools" in values and values["tools"] is None:
            values["tools"] = []
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> AgentConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> AgentConfig:
        """Load config from a YAML string."""
        return cls.from_dict(yaml.safe_load(content) or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert to a YAML-safe dictionary. The API key is never included."""
        return {
            "model": self.model,
            "base_url": self.base_url,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "request_timeout": self.request_timeout,
            "max_cycles": self.max_cycles,
            "prompt_file": str(self.prompt_file) if self.prompt_file else None,
            "tools": list(self.tools),
            "script_timeout": self.script_timeout,
            "browse_max_chars": self.browse_max_chars,
            "search_max_results": self.search_max_results,
        }
