from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Union

MAX_TURN_BYTES = 20_000  # UTF-8 bytes, not characters
TRUNCATION_MARKER = "...[TRUNCATED]"


def truncate_content(content: str | None, max_bytes: int = MAX_TURN_BYTES) -> str | None:
    if content is None:
        return content
    encoded = content.encode("utf-8")
    if len(encoded) <= max_bytes:
        return content
    # A character split at the boundary is dropped whole.
    return encoded[:max_bytes].decode("utf-8", errors="ignore") + TRUNCATION_MARKER


def _require_text(role: str, content: object) -> None:
    if not isinstance(content, str):
        raise TypeError(f"{role} turn content must be a string, got {type(content).__name__}")


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool call requires a name")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}


@dataclass(frozen=True)
class UserTurn:
    content: str
    timestamp: float = field(default_factory=time.time)
    role: str = field(default="user", init=False)

    def __post_init__(self) -> None:
        _require_text(self.role, self.content)
        object.__setattr__(self, "content", truncate_content(self.content))


@dataclass(frozen=True)
class SystemTurn:
    content: str
    timestamp: float = field(default_factory=time.time)
    role: str = field(default="system", init=False)

    def __post_init__(self) -> None:
        _require_text(self.role, self.content)
        object.__setattr__(self, "content", truncate_content(self.content))


@dataclass(frozen=True)
class AssistantTurn:
    content: str
    timestamp: float = field(default_factory=time.time)
    role: str = field(default="assistant", init=False)

    def __post_init__(self) -> None:
        _require_text(self.role, self.content)
        object.__setattr__(self, "content", truncate_content(self.content))


@dataclass(frozen=True)
class ToolCallTurn:
    """Assistant turn that asks for one or more tool executions."""

    tool_calls: tuple[ToolCall, ...]
    content: str | None = None
    timestamp: float = field(default_factory=time.time)
    role: str = field(default="assistant", init=False)

    def __post_init__(self) -> None:
        if not self.tool_calls:
            raise ValueError("Tool call turn requires at least one tool call")
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        object.__setattr__(self, "content", truncate_content(self.content))


@dataclass(frozen=True)
class ToolResultTurn:
    tool_call_id: str
    tool_name: str
    content: str
    timestamp: float = field(default_factory=time.time)
    role: str = field(default="tool", init=False)

    def __post_init__(self) -> None:
        _require_text(self.role, self.content)
        if not self.tool_name:
            raise ValueError("Tool result turn requires a tool name")
        object.__setattr__(self, "content", truncate_content(self.content))


Turn = Union[UserTurn, SystemTurn, AssistantTurn, ToolCallTurn, ToolResultTurn]


def turn_to_dict(turn: Turn) -> dict:
    data: dict[str, Any] = {"role": turn.role, "content": turn.content, "timestamp": turn.timestamp}
    if isinstance(turn, ToolCallTurn):
        data["tool_calls"] = [call.to_dict() for call in turn.tool_calls]
    elif isinstance(turn, ToolResultTurn):
        data["tool_call_id"] = turn.tool_call_id
        data["tool_name"] = turn.tool_name
    return data


def turn_from_dict(data: dict) -> Turn:
    role = data.get("role")
    content = data.get("content")
    timestamp = float(data.get("timestamp") or time.time())

    if role == "user":
        return UserTurn(content, timestamp=timestamp)
    if role == "system":
        return SystemTurn(content, timestamp=timestamp)
    if role == "assistant":
        raw_calls = data.get("tool_calls") or []
        if raw_calls:
            calls = tuple(
                ToolCall(id=c.get("id", ""), name=c["name"], arguments=dict(c.get("arguments") or {}))
                for c in raw_calls
            )
            return ToolCallTurn(calls, content=content, timestamp=timestamp)
        return AssistantTurn(content or "", timestamp=timestamp)
    if role == "tool":
        return ToolResultTurn(
            tool_call_id=data.get("tool_call_id", ""),
            tool_name=data["tool_name"],
            content=content or "",
            timestamp=timestamp,
        )
    raise ValueError(f"Unknown turn role: {role!r}")


@dataclass
class Session:
    conversation_id: str
    turns: list[Turn] = field(default_factory=list)
    active_entity: str | None = None
    last_accessed: float = field(default_factory=time.time)

    def touch(self, now: float | None = None) -> None:
        self.last_accessed = time.time() if now is None else now

    def prune(self, max_history: int) -> None:
        if max_history > 0 and len(self.turns) > max_history:
            del self.turns[: len(self.turns) - max_history]
