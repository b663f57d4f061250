from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int


@dataclass
class _Window:
    count: int
    started_at_ms: float
    window_ms: int

    def expired(self, now_ms: float) -> bool:
        return now_ms > self.started_at_ms + self.window_ms


class RateLimiter:
    """Fixed-window request counter, one window per identifier.

    Purely in-memory: a restart resets every counter.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def check(self, identifier: str, limit: int, window_ms: int) -> RateLimitResult:
        now = self._now_ms()
        window = self._windows.get(identifier)

        if window is None or window.expired(now):
            self._windows[identifier] = _Window(count=1, started_at_ms=now, window_ms=window_ms)
            return RateLimitResult(allowed=True, remaining=max(0, limit - 1))

        if window.count >= limit:
            return RateLimitResult(allowed=False, remaining=0)

        window.count += 1
        return RateLimitResult(allowed=True, remaining=limit - window.count)

    def sweep(self) -> int:
        now = self._now_ms()
        expired = [key for key, window in self._windows.items() if window.expired(now)]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
