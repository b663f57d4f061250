from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 10 * 60
# Stale entries stay servable on refresh failure for this many TTLs, then are swept.
STALE_RETENTION_TTLS = 6


def normalize_query(query: str) -> str:
    return " ".join(query.lower().split())


def make_cache_key(query: str, entity_filter: str | None = None) -> str:
    raw = f"{normalize_query(query)}\x1f{entity_filter or ''}"
    return "retrieval:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    value: T
    created_at: float


class RetrievalCache(Generic[T]):
    """Content-addressed TTL cache that serves stale values when a refresh fails.

    Cold keys requested concurrently are fetched independently; only
    sequential access is limited to one fetch per key per TTL window.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        *,
        stale_retention_seconds: float | None = None,
    ):
        self._ttl_seconds = ttl_seconds
        self._stale_retention_seconds = (
            stale_retention_seconds if stale_retention_seconds is not None else ttl_seconds * STALE_RETENTION_TTLS
        )
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}

    def _is_fresh(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.created_at < self._ttl_seconds

    async def get_or_fetch(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        now = self._clock()
        entry = self._entries.get(key)

        if entry is not None and self._is_fresh(entry, now):
            return entry.value

        try:
            value = await fetch_fn()
        except Exception as ex:
            if entry is not None:
                age = now - entry.created_at
                logger.warning(f"Fetch failed for {key} ({type(ex).__name__}: {ex}); serving stale value ({age:.0f}s old)")
                return entry.value
            raise

        self._entries[key] = CacheEntry(key=key, value=value, created_at=self._clock())
        return value

    def peek(self, key: str) -> CacheEntry[T] | None:
        return self._entries.get(key)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self, max_age_seconds: float | None = None) -> int:
        """Drop entries older than ``max_age_seconds`` (default: the stale-retention horizon)."""
        horizon = self._stale_retention_seconds if max_age_seconds is None else max_age_seconds
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.created_at >= horizon]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
