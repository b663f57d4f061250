from portfolio_chat.memory.models import (
    AssistantTurn,
    Session,
    SystemTurn,
    ToolCall,
    ToolCallTurn,
    ToolResultTurn,
    Turn,
    UserTurn,
)
from portfolio_chat.memory.session_store import (
    InMemorySessionStore,
    ResilientSessionStore,
    SessionStore,
    SqliteSessionStore,
)
from portfolio_chat.memory.store import MemoryStore

__all__ = [
    "AssistantTurn",
    "InMemorySessionStore",
    "MemoryStore",
    "ResilientSessionStore",
    "Session",
    "SessionStore",
    "SqliteSessionStore",
    "SystemTurn",
    "ToolCall",
    "ToolCallTurn",
    "ToolResultTurn",
    "Turn",
    "UserTurn",
]
