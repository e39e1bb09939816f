#!/usr/bin/env python3
"""
deduce-agent demo

Shows a streamed ReAct turn with a custom tool next to the built-in ones.

Usage:
    # Needs OPENAI_API_KEY (and optionally OPENAI_BASE_URL / DEDUCE_MODEL),
    # a .env file in the current directory works too
    python examples/agent_demo.py

    python examples/agent_demo.py "How many days until new year?"
"""

import asyncio
import sys
from datetime import date

from deduce_agent import (
    CONTENT,
    HISTORY_UPDATE,
    STEP,
    AgentConfig,
    AgentRunner,
    FunctionTool,
    OpenAITransport,
    create_default_tools,
)


async def today(_: str) -> str:
    return date.today().isoformat()


async def main(question: str) -> None:
    config = AgentConfig.from_env(tools=["search", "eval"])
    tools = [
        *create_default_tools(config),
        FunctionTool("today", "Returns today's date. Input is ignored.", today),
    ]
    runner = AgentRunner(OpenAITransport(config), tools, config)

    @runner.events.on(STEP)
    def show_step(event):
        print(f"  {event.step}")

    @runner.events.on(CONTENT)
    def show_answer(event):
        print(event.content, end="", flush=True)

    @runner.events.on(HISTORY_UPDATE)
    def checkpoint(event):
        # A real host would persist event.history here.
        if not event.final:
            print(f"  [{len(event.history[-1].steps)} steps so far]")

    print(f"User: {question}\n")
    try:
        reply = await runner.chat(question)
    finally:
        await runner.transport.close()

    print(f"\n\nAnswer used {len(reply.steps)} reasoning steps.")


if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "What weekday is it today?"))
