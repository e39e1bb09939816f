"""
deduce-agent: a streaming ReAct agent.

The model reasons in labeled steps (``Thought:``, ``Action:``, ``Input:``,
``Observation:``, ``Answer:``); the agent parses them as they stream,
runs the requested tools and feeds the observations back until the model
answers.

Example:
    from deduce_agent import AgentConfig, AgentRunner

    runner = AgentRunner.create(AgentConfig.from_env())
    reply = await runner.chat("What is 2**32?")
    print(reply.content)
"""

from deduce_agent.agent import AgentRunner
from deduce_agent.config import AgentConfig
from deduce_agent.errors import (
    AgentAbortedError,
    AgentError,
    Cancelled,
    Completed,
    CycleLimitError,
    CycleOutcome,
    Failed,
    MissingInputError,
    ToolExecutionError,
    UnexpectedStateError,
    UnknownToolError,
)
from deduce_agent.events import (
    AGENT_END,
    AGENT_START,
    CONTENT,
    CYCLE_END,
    CYCLE_START,
    HISTORY_UPDATE,
    STEP,
    EventBus,
    StreamEvent,
)
from deduce_agent.history import reconcile
from deduce_agent.parser import StepParser
from deduce_agent.prompts import PromptTemplate, build_system_prompt
from deduce_agent.steps import (
    Action,
    ConversationTurn,
    ExecutionResult,
    ReasoningStep,
    Role,
    StepKind,
    parse_trace,
    render_steps,
    render_turn,
    strip_quotes,
)
from deduce_agent.tools import (
    BrowseTool,
    FunctionTool,
    ScriptTool,
    SearchTool,
    Tool,
    ToolDispatcher,
    ToolRegistry,
    create_default_tools,
)
from deduce_agent.transports import (
    CancellationToken,
    CompletionTransport,
    Delta,
    OpenAITransport,
    ResponseState,
    TransportAbortedError,
)
from deduce_agent.turn import AgentState, TurnContext

__version__ = "0.1.0"

__all__ = [
    # Agent
    "AgentRunner",
    "AgentConfig",
    "AgentState",
    "TurnContext",
    "StepParser",
    "reconcile",
    # Steps
    "Action",
    "ConversationTurn",
    "ExecutionResult",
    "ReasoningStep",
    "Role",
    "StepKind",
    "parse_trace",
    "render_steps",
    "render_turn",
    "strip_quotes",
    # Errors
    "AgentError",
    "AgentAbortedError",
    "MissingInputError",
    "UnknownToolError",
    "ToolExecutionError",
    "UnexpectedStateError",
    "CycleLimitError",
    "Completed",
    "Cancelled",
    "Failed",
    "CycleOutcome",
    # Events
    "EventBus",
    "StreamEvent",
    "AGENT_START",
    "AGENT_END",
    "CYCLE_START",
    "CYCLE_END",
    "STEP",
    "CONTENT",
    "HISTORY_UPDATE",
    # Prompts
    "PromptTemplate",
    "build_system_prompt",
    # Tools
    "Tool",
    "FunctionTool",
    "ToolRegistry",
    "ToolDispatcher",
    "SearchTool",
    "BrowseTool",
    "ScriptTool",
    "create_default_tools",
    # Transports
    "CancellationToken",
    "CompletionTransport",
    "Delta",
    "ResponseState",
    "OpenAITransport",
    "TransportAbortedError",
]
