"""
Command-line interface for deduce-agent.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from deduce_agent.agent import AgentRunner
from deduce_agent.config import AgentConfig
from deduce_agent.errors import AgentAbortedError, AgentError
from deduce_agent.events import CONTENT, STEP, ContentEvent, StepEvent
from deduce_agent.logging import setup_logging
from deduce_agent.prompts import PromptTemplate
from deduce_agent.steps import StepKind
from deduce_agent.tools import create_default_tools

console = Console()

_EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit"}


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="ReAct agent over OpenAI-compatible chat models",
        prog="deduce",
    )

    # Global options
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output (debug logging)",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="YAML config file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("tools", help="List the enabled tools")
    subparsers.add_parser("prompt", help="Print the rendered system prompt")

    chat_parser = subparsers.add_parser("chat", help="Chat with the agent")
    chat_parser.add_argument(
        "question",
        nargs="?",
        help="Answer this question and exit instead of starting a session",
    )

    args = parser.parse_args()

    if getattr(args, "verbose", False):
        setup_logging("DEBUG", rich=True)
    else:
        setup_logging("WARNING", rich=True)

    if args.command == "tools":
        cmd_tools(args)
    elif args.command == "prompt":
        cmd_prompt(args)
    elif args.command == "chat":
        asyncio.run(cmd_chat(args))
    else:
        parser.print_help()


def _load_config(path: str | None) -> AgentConfig:
    """Config from ``path`` if given, with connection settings from the environment."""
    env_config = AgentConfig.from_env()
    if not path:
        return env_config

    config = AgentConfig.from_yaml(Path(path))
    config.base_url = config.base_url or env_config.base_url
    config.api_key = config.api_key or env_config.api_key
    return config


def _template(config: AgentConfig) -> PromptTemplate:
    if config.prompt_file:
        return PromptTemplate.from_file(config.prompt_file)
    return PromptTemplate.default()


def cmd_tools(args: argparse.Namespace) -> None:
    """List the enabled tools."""
    config = _load_config(args.config)
    tools = create_default_tools(config)

    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Display name")
    table.add_column("Description")

    for tool in tools:
        table.add_row(tool.name, tool.display_name, tool.description_for_model[:70])

    console.print(table)
    console.print(f"\n[dim]Total: {len(tools)} tools[/dim]")


def cmd_prompt(args: argparse.Namespace) -> None:
    """Print the system prompt the model will receive."""
    config = _load_config(args.config)
    prompt = _template(config).render(create_default_tools(config))
    console.print(prompt, markup=False, highlight=False)


def _attach_printers(runner: AgentRunner) -> None:
    @runner.events.on(STEP)
    def print_step(event: StepEvent) -> None:
        style = "green" if event.step.kind is StepKind.OBSERVATION else "dim"
        console.print(str(event.step), style=style, markup=False, highlight=False)

    @runner.events.on(CONTENT)
    def print_content(event: ContentEvent) -> None:
        style = "yellow" if event.unexpected else None
        console.print(event.content, end="", style=style, markup=False, highlight=False)


async def _answer(runner: AgentRunner, question: str, retry: bool = False) -> bool:
    """Run one turn and print errors. Returns False when the turn failed."""
    try:
        if retry:
            await runner.regenerate()
        else:
            await runner.chat(question)
    except AgentAbortedError:
        console.print("\n[yellow]Aborted[/yellow]")
        runner.reset_abort()
        return False
    except (AgentError, ValueError) as e:
        console.print(f"\n[red]Error:[/red] {e}")
        return False
    console.print()
    return True


async def cmd_chat(args: argparse.Namespace) -> None:
    """Interactive chat, or a single question with ``deduce chat "..."``."""
    config = _load_config(args.config)
    runner = AgentRunner.create(config)
    _attach_printers(runner)

    try:
        if args.question:
            if not await _answer(runner, args.question):
                sys.exit(1)
            return

        console.print("[dim]/reset clears the conversation, /retry answers again, exit quits[/dim]")
        while True:
            try:
                line = console.input("[bold cyan]> [/bold cyan]").strip()
            except (EOFError, KeyboardInterrupt):
                console.print()
                break
            if not line:
                continue
            if line.lower() in _EXIT_COMMANDS:
                break
            if line == "/reset":
                runner.clear_history()
                console.print("[dim]Conversation cleared[/dim]")
                continue
            await _answer(runner, line, retry=line == "/retry")
    finally:
        await runner.transport.close()


if __name__ == "__main__":
    main()
