"""History reconciliation for multi-hop assistant turns."""
from __future__ import annotations

from collections.abc import Sequence

from deduce_agent.steps import ConversationTurn, Role


def copy_turn(turn: ConversationTurn) -> ConversationTurn:
    return ConversationTurn(role=turn.role, content=turn.content, steps=list(turn.steps))


def merge_turns(previous: ConversationTurn, turn: ConversationTurn) -> ConversationTurn:
    """Concatenate the steps and content of two assistant turns."""
    return ConversationTurn(
        role=Role.ASSISTANT,
        content=previous.content + turn.content,
        steps=[*previous.steps, *turn.steps],
    )


def reconcile(
    history: Sequence[ConversationTurn], turn: ConversationTurn
) -> list[ConversationTurn]:
    """
    Fold the in-progress assistant ``turn`` into ``history``.

    If the last history entry is already an assistant turn (a partial turn
    persisted by an earlier run), the two are merged into one entry.
    Otherwise ``turn`` is appended. ``history`` itself is not modified and
    the returned list holds copies, so later changes to ``turn`` do not leak
    into a published history.
    """
    merged = list(history)
    if turn.role is Role.ASSISTANT and merged and merged[-1].role is Role.ASSISTANT:
        merged[-1] = merge_turns(merged[-1], turn)
    else:
        merged.append(copy_turn(turn))
    return merged
