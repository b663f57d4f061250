from __future__ import annotations

import json
from collections.abc import Sequence

from portfolio_chat.memory.models import ToolCallTurn, ToolResultTurn, Turn

CONTEXT_HEADING = "=== RETRIEVED CONTEXT ==="
NO_CONTEXT_FOUND = "No relevant context found."


def turn_to_message(turn: Turn) -> dict:
    """Render a stored turn as an OpenAI-style chat message."""
    if isinstance(turn, ToolCallTurn):
        return {
            "role": "assistant",
            "content": turn.content,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in turn.tool_calls
            ],
        }
    if isinstance(turn, ToolResultTurn):
        return {
            "role": "tool",
            "tool_call_id": turn.tool_call_id,
            "name": turn.tool_name,
            "content": turn.content,
        }
    return {"role": turn.role, "content": turn.content}


def build_messages(system_prompt: str, context_block: str | None, history: Sequence[Turn]) -> list[dict]:
    """One system message followed by ``history`` in order.

    ``history`` is already bounded by the session store and is not truncated here.
    """
    block = context_block if context_block and context_block.strip() else NO_CONTEXT_FOUND
    system_content = f"{system_prompt}\n\n{CONTEXT_HEADING}\n{block}"
    return [{"role": "system", "content": system_content}, *(turn_to_message(t) for t in history)]
