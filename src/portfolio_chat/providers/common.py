from __future__ import annotations

import json
from dataclasses import dataclass, field

from loguru import logger

from portfolio_chat.memory.models import ToolCall


@dataclass(frozen=True)
class ModelDecision:
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


def parse_arguments(raw: str | dict | None) -> dict:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse tool call arguments: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def drop_unpaired_tool_messages(messages: list[dict]) -> list[dict]:
    """Keep only complete tool exchanges.

    History pruning can cut a tool-call turn away from its results (or the
    reverse). Providers reject a tool result without its call and a call
    without every one of its results, so unpaired pieces are dropped.
    """
    out: list[dict] = []
    i = 0
    while i < len(messages):
        msg = messages[i]
        if msg.get("role") == "tool":
            logger.debug(f"Dropping orphaned tool result {msg.get('tool_call_id')}")
            i += 1
            continue

        if msg.get("role") == "assistant" and msg.get("tool_calls"):
            j = i + 1
            results: list[dict] = []
            while j < len(messages) and messages[j].get("role") == "tool":
                results.append(messages[j])
                j += 1
            wanted = {call["id"] for call in msg["tool_calls"]}
            answered = {r.get("tool_call_id") for r in results}
            if wanted <= answered:
                out.append(msg)
                out.extend(r for r in results if r.get("tool_call_id") in wanted)
            else:
                logger.debug(f"Dropping tool call turn with {len(wanted - answered)} unanswered call(s)")
            i = j
            continue

        out.append(msg)
        i += 1
    return out
