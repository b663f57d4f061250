from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from typing import Callable, Protocol, runtime_checkable

from loguru import logger

from portfolio_chat.exceptions import StorageError
from portfolio_chat.memory.models import Session, Turn, turn_from_dict, turn_to_dict
from portfolio_chat.memory.store import MemoryStore

DEFAULT_MAX_HISTORY = 12
DEFAULT_SESSION_TTL_SECONDS = 30 * 60

_STORAGE_ERRORS = (StorageError, sqlite3.Error, OSError)


@runtime_checkable
class SessionStore(Protocol):
    async def get_history(self, conversation_id: str) -> list[Turn]: ...

    async def append_turn(self, conversation_id: str, turn: Turn) -> None: ...

    async def get_active_entity(self, conversation_id: str) -> str | None: ...

    async def set_active_entity(self, conversation_id: str, key: str | None) -> None: ...

    async def clear(self, conversation_id: str) -> None: ...

    async def restore(self, session: Session) -> None: ...

    async def sweep_idle(self, idle_seconds: float) -> int: ...


class InMemorySessionStore:
    """Process-local sessions keyed by conversation id."""

    def __init__(self, *, max_history: int = DEFAULT_MAX_HISTORY, clock: Callable[[], float] = time.time):
        self._max_history = max_history
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    def _get_or_create(self, conversation_id: str) -> Session:
        session = self._sessions.get(conversation_id)
        if session is None:
            session = Session(conversation_id, last_accessed=self._clock())
            self._sessions[conversation_id] = session
        return session

    def snapshot(self, conversation_id: str) -> Session | None:
        session = self._sessions.get(conversation_id)
        if session is None:
            return None
        return Session(
            conversation_id=session.conversation_id,
            turns=list(session.turns),
            active_entity=session.active_entity,
            last_accessed=session.last_accessed,
        )

    async def get_history(self, conversation_id: str) -> list[Turn]:
        session = self._sessions.get(conversation_id)
        if session is None:
            return []
        session.touch(self._clock())
        return list(session.turns)

    async def append_turn(self, conversation_id: str, turn: Turn) -> None:
        session = self._get_or_create(conversation_id)
        session.turns.append(turn)
        session.touch(self._clock())
        session.prune(self._max_history)

    async def get_active_entity(self, conversation_id: str) -> str | None:
        session = self._sessions.get(conversation_id)
        return session.active_entity if session else None

    async def set_active_entity(self, conversation_id: str, key: str | None) -> None:
        session = self._get_or_create(conversation_id)
        session.active_entity = key
        session.touch(self._clock())

    async def clear(self, conversation_id: str) -> None:
        self._sessions.pop(conversation_id, None)

    async def restore(self, session: Session) -> None:
        copy = Session(
            conversation_id=session.conversation_id,
            turns=list(session.turns),
            active_entity=session.active_entity,
            last_accessed=session.last_accessed,
        )
        copy.prune(self._max_history)
        self._sessions[session.conversation_id] = copy

    async def sweep_idle(self, idle_seconds: float) -> int:
        cutoff = self._clock() - idle_seconds
        expired = [sid for sid, s in self._sessions.items() if s.last_accessed < cutoff]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SqliteSessionStore:
    """Durable sessions on top of :class:`MemoryStore`.

    sqlite calls block, so each operation runs in a worker thread.
    """

    def __init__(
        self,
        store: MemoryStore,
        *,
        max_history: int = DEFAULT_MAX_HISTORY,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._max_history = max_history
        self._clock = clock

    async def get_history(self, conversation_id: str) -> list[Turn]:
        return await asyncio.to_thread(self._get_history, conversation_id)

    async def append_turn(self, conversation_id: str, turn: Turn) -> None:
        await asyncio.to_thread(self._append_turn, conversation_id, turn)

    async def get_active_entity(self, conversation_id: str) -> str | None:
        return await asyncio.to_thread(self._get_active_entity, conversation_id)

    async def set_active_entity(self, conversation_id: str, key: str | None) -> None:
        await asyncio.to_thread(self._set_active_entity, conversation_id, key)

    async def clear(self, conversation_id: str) -> None:
        await asyncio.to_thread(self._clear, conversation_id)

    async def restore(self, session: Session) -> None:
        await asyncio.to_thread(self._restore, session)

    async def sweep_idle(self, idle_seconds: float) -> int:
        return await asyncio.to_thread(self._sweep_idle, idle_seconds)

    def _ensure_session(self, conversation_id: str, now: float) -> None:
        self._store.execute(
            "INSERT OR IGNORE INTO sessions (id, active_entity, created_at, last_accessed) VALUES (?, NULL, ?, ?)",
            (conversation_id, now, now),
        )

    def _get_history(self, conversation_id: str) -> list[Turn]:
        with self._store.transaction():
            self._store.execute(
                "UPDATE sessions SET last_accessed = ? WHERE id = ?",
                (self._clock(), conversation_id),
            )
            rows = self._store.execute(
                "SELECT payload_json FROM turns WHERE session_id = ? ORDER BY seq ASC",
                (conversation_id,),
            ).fetchall()
        return [turn_from_dict(json.loads(row["payload_json"])) for row in rows]

    def _insert_turn(self, conversation_id: str, seq: int, turn: Turn, now: float) -> None:
        self._store.execute(
            "INSERT INTO turns (session_id, seq, role, payload_json, created_at) VALUES (?, ?, ?, ?, ?)",
            (conversation_id, seq, turn.role, json.dumps(turn_to_dict(turn), ensure_ascii=True), now),
        )

    def _prune(self, conversation_id: str) -> None:
        if self._max_history <= 0:
            return
        self._store.execute(
            """
            DELETE FROM turns
            WHERE session_id = ?
              AND seq NOT IN (
                SELECT seq FROM turns WHERE session_id = ? ORDER BY seq DESC LIMIT ?
              )
            """,
            (conversation_id, conversation_id, self._max_history),
        )

    def _append_turn(self, conversation_id: str, turn: Turn) -> None:
        now = self._clock()
        with self._store.transaction():
            self._ensure_session(conversation_id, now)
            row = self._store.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM turns WHERE session_id = ?",
                (conversation_id,),
            ).fetchone()
            self._insert_turn(conversation_id, int(row["max_seq"]) + 1, turn, now)
            self._store.execute(
                "UPDATE sessions SET last_accessed = ? WHERE id = ?",
                (now, conversation_id),
            )
            self._prune(conversation_id)

    def _get_active_entity(self, conversation_id: str) -> str | None:
        row = self._store.execute(
            "SELECT active_entity FROM sessions WHERE id = ? LIMIT 1",
            (conversation_id,),
        ).fetchone()
        return row["active_entity"] if row is not None else None

    def _set_active_entity(self, conversation_id: str, key: str | None) -> None:
        now = self._clock()
        with self._store.transaction():
            self._ensure_session(conversation_id, now)
            self._store.execute(
                "UPDATE sessions SET active_entity = ?, last_accessed = ? WHERE id = ?",
                (key, now, conversation_id),
            )

    def _clear(self, conversation_id: str) -> None:
        with self._store.transaction():
            self._store.execute("DELETE FROM sessions WHERE id = ?", (conversation_id,))

    def _restore(self, session: Session) -> None:
        now = self._clock()
        turns = session.turns[-self._max_history :] if self._max_history > 0 else session.turns
        with self._store.transaction():
            self._store.execute("DELETE FROM sessions WHERE id = ?", (session.conversation_id,))
            self._store.execute(
                "INSERT INTO sessions (id, active_entity, created_at, last_accessed) VALUES (?, ?, ?, ?)",
                (session.conversation_id, session.active_entity, now, session.last_accessed),
            )
            for seq, turn in enumerate(turns, start=1):
                self._insert_turn(session.conversation_id, seq, turn, now)

    def _sweep_idle(self, idle_seconds: float) -> int:
        cutoff = self._clock() - idle_seconds
        with self._store.transaction():
            cursor = self._store.execute("DELETE FROM sessions WHERE last_accessed < ?", (cutoff,))
        return max(0, cursor.rowcount)


class ResilientSessionStore:
    """Serves every operation from ``primary`` and degrades to ``fallback`` on storage errors.

    A conversation written to the fallback is marked dirty: the fallback is its
    source of truth until a later write manages to copy it back to the primary.
    """

    def __init__(self, primary: SessionStore, fallback: InMemorySessionStore | None = None):
        self._primary = primary
        self._fallback = fallback or InMemorySessionStore()
        self._dirty: set[str] = set()

    @property
    def degraded_conversations(self) -> frozenset[str]:
        return frozenset(self._dirty)

    def _degraded(self, operation: str, conversation_id: str, ex: BaseException) -> None:
        logger.warning(
            f"Session storage {operation} failed for {conversation_id}; "
            f"using in-process fallback: {type(ex).__name__}: {ex}"
        )

    async def _mark_dirty(self, conversation_id: str) -> None:
        if conversation_id not in self._dirty and conversation_id not in self._fallback:
            # Carry over whatever the primary can still serve.
            try:
                turns = await self._primary.get_history(conversation_id)
                entity = await self._primary.get_active_entity(conversation_id)
            except _STORAGE_ERRORS:
                turns, entity = [], None
            if turns or entity:
                await self._fallback.restore(Session(conversation_id, turns=turns, active_entity=entity))
        self._dirty.add(conversation_id)

    async def _sync(self, conversation_id: str) -> None:
        session = self._fallback.snapshot(conversation_id)
        if session is None:
            self._dirty.discard(conversation_id)
            return
        try:
            await self._primary.restore(session)
        except _STORAGE_ERRORS as ex:
            logger.debug(f"Primary session storage still unavailable for {conversation_id}: {ex}")
            return
        self._dirty.discard(conversation_id)
        await self._fallback.clear(conversation_id)
        logger.info(f"Session {conversation_id} written back to primary storage")

    async def get_history(self, conversation_id: str) -> list[Turn]:
        if conversation_id in self._dirty:
            return await self._fallback.get_history(conversation_id)
        try:
            return await self._primary.get_history(conversation_id)
        except _STORAGE_ERRORS as ex:
            self._degraded("get_history", conversation_id, ex)
            return await self._fallback.get_history(conversation_id)

    async def get_active_entity(self, conversation_id: str) -> str | None:
        if conversation_id in self._dirty:
            return await self._fallback.get_active_entity(conversation_id)
        try:
            return await self._primary.get_active_entity(conversation_id)
        except _STORAGE_ERRORS as ex:
            self._degraded("get_active_entity", conversation_id, ex)
            return await self._fallback.get_active_entity(conversation_id)

    async def append_turn(self, conversation_id: str, turn: Turn) -> None:
        if conversation_id in self._dirty:
            await self._fallback.append_turn(conversation_id, turn)
            await self._sync(conversation_id)
            return
        try:
            await self._primary.append_turn(conversation_id, turn)
        except _STORAGE_ERRORS as ex:
            self._degraded("append_turn", conversation_id, ex)
            await self._mark_dirty(conversation_id)
            await self._fallback.append_turn(conversation_id, turn)

    async def set_active_entity(self, conversation_id: str, key: str | None) -> None:
        if conversation_id in self._dirty:
            await self._fallback.set_active_entity(conversation_id, key)
            await self._sync(conversation_id)
            return
        try:
            await self._primary.set_active_entity(conversation_id, key)
        except _STORAGE_ERRORS as ex:
            self._degraded("set_active_entity", conversation_id, ex)
            await self._mark_dirty(conversation_id)
            await self._fallback.set_active_entity(conversation_id, key)

    async def clear(self, conversation_id: str) -> None:
        self._dirty.discard(conversation_id)
        await self._fallback.clear(conversation_id)
        try:
            await self._primary.clear(conversation_id)
        except _STORAGE_ERRORS as ex:
            self._degraded("clear", conversation_id, ex)

    async def restore(self, session: Session) -> None:
        try:
            await self._primary.restore(session)
        except _STORAGE_ERRORS as ex:
            self._degraded("restore", session.conversation_id, ex)
            self._dirty.add(session.conversation_id)
            await self._fallback.restore(session)

    async def sweep_idle(self, idle_seconds: float) -> int:
        removed = await self._fallback.sweep_idle(idle_seconds)
        self._dirty = {sid for sid in self._dirty if sid in self._fallback}
        try:
            removed += await self._primary.sweep_idle(idle_seconds)
        except _STORAGE_ERRORS as ex:
            logger.warning(f"Idle session sweep skipped on primary storage: {ex}")
        return removed
