"""Script tool - run a Python snippet in a child interpreter."""
from __future__ import annotations

import asyncio
import re
import sys

from deduce_agent.logging import get_logger
from deduce_agent.steps import ExecutionResult
from deduce_agent.tools.registry import Tool

logger = get_logger("tools.script")

_DEFAULT_TIMEOUT = 30.0

# Maximum output size in characters before truncation
_MAX_OUTPUT = 20_000

# Language tag left over when the model wraps code in a fenced block
_FENCE_TAG = re.compile(r"^(?:python3?|py)[ \t]*\n", re.IGNORECASE)


class ScriptTool(Tool):
    """Execute Python source and return what it printed."""

    def __init__(self, timeout: float = _DEFAULT_TIMEOUT, cwd: str | None = None) -> None:
        self.timeout = timeout
        self.cwd = cwd

    @property
    def name(self) -> str:
        return "eval"

    @property
    def display_name(self) -> str:
        return "Script"

    @property
    def description_for_model(self) -> str:
        return (
            "Run a Python script. Only use the standard library and do not write "
            "any file into the filesystem. Input is raw Python code, do not pass "
            "markdown text. Output is what the script prints, so use print() for "
            "anything you want to see."
        )

    async def execute(self, input: str) -> ExecutionResult:
        code = _FENCE_TAG.sub("", input.strip(), count=1)
        logger.debug("Running script (%d chars, timeout=%ss)", len(code), self.timeout)

        process = await asyncio.create_subprocess_exec(
            sys.executable,
            "-I",
            "-c",
            code,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=self.cwd,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            output = f"Error: script timed out after {self.timeout}s"
            return ExecutionResult.from_text(output)

        output = self._truncate(stdout.decode("utf-8", errors="replace").rstrip())
        exit_code = process.returncode or 0
        if exit_code != 0:
            output = f"Exit code: {exit_code}\n{output}"
        logger.debug("Script finished (exit=%d, %d chars)", exit_code, len(output))
        return ExecutionResult.from_text(output or "(no output)")

    @staticmethod
    def _truncate(text: str) -> str:
        if len(text) > _MAX_OUTPUT:
            half = _MAX_OUTPUT // 2
            return (
                text[:half]
                + f"\n\n... ({len(text) - _MAX_OUTPUT} characters truncated) ...\n\n"
                + text[-half:]
            )
        return text
