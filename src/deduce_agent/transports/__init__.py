"""
Completion transports: the contract the agent loop consumes and an
OpenAI-compatible implementation.
"""

from deduce_agent.transports.base import (
    CancellationToken,
    CompletionTransport,
    Delta,
    DeltaCallback,
    ResponseState,
    TransportAbortedError,
)
from deduce_agent.transports.openai import OpenAITransport

__all__ = [
    "CancellationToken",
    "CompletionTransport",
    "Delta",
    "DeltaCallback",
    "OpenAITransport",
    "ResponseState",
    "TransportAbortedError",
]
