from __future__ import annotations

import asyncio

from loguru import logger

from portfolio_chat.memory.session_store import DEFAULT_SESSION_TTL_SECONDS, SessionStore
from portfolio_chat.rate_limiter import RateLimiter
from portfolio_chat.retrieval.cache import RetrievalCache

RATE_LIMIT_SWEEP_SECONDS = 60.0
SESSION_SWEEP_SECONDS = 300.0


class PeriodicSweeper:
    """Background tasks that drop expired rate-limit windows, old cache entries and idle sessions."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        sessions: SessionStore,
        *,
        session_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        rate_limit_interval: float = RATE_LIMIT_SWEEP_SECONDS,
        session_interval: float = SESSION_SWEEP_SECONDS,
        caches: list[RetrievalCache] | None = None,
    ):
        self._rate_limiter = rate_limiter
        self._sessions = sessions
        self._caches = list(caches or [])
        self._session_ttl_seconds = session_ttl_seconds
        self._rate_limit_interval = max(0.01, rate_limit_interval)
        self._session_interval = max(0.01, session_interval)
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if not self._tasks:
            self._tasks = [
                asyncio.create_task(self._every(self._rate_limit_interval, self.sweep_rate_limits)),
                asyncio.create_task(self._every(self._rate_limit_interval, self.sweep_caches)),
                asyncio.create_task(self._every(self._session_interval, self.sweep_sessions)),
            ]

    async def close(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def sweep_rate_limits(self) -> int:
        removed = self._rate_limiter.sweep()
        if removed:
            logger.debug(f"Swept {removed} expired rate limit windows")
        return removed

    async def sweep_caches(self) -> int:
        removed = sum(cache.sweep() for cache in self._caches)
        if removed:
            logger.debug(f"Swept {removed} stale cache entries")
        return removed

    async def sweep_sessions(self) -> int:
        removed = await self._sessions.sweep_idle(self._session_ttl_seconds)
        if removed:
            logger.info(f"Swept {removed} idle sessions")
        return removed

    async def _every(self, interval: float, sweep) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await sweep()
            except Exception as ex:
                logger.error(f"{sweep.__name__} failed: {ex}")
