"""In-Memory Rate Limiter — fixed-window request counters keyed by caller.

Invariants:
    - A window opens on the first hit for a key and lasts window_seconds
    - Within a window at most `limit` hits are allowed; remaining never goes negative
    - Expired windows are pruned lazily (every PRUNE_EVERY hits)

Design Decisions:
    - Fixed window over token bucket: the X-RateLimit-Reset header needs one reset instant
    - Process-local state on app.state: single-process deployment, counters reset on restart
      (ADR: no shared cache dependency)
"""

import time
from dataclasses import dataclass
from typing import Callable

PRUNE_EVERY = 1000


@dataclass(frozen=True)
class RateLimitPreset:
    name: str
    limit: int
    window_seconds: int


PRESETS: dict[str, RateLimitPreset] = {
    "auth": RateLimitPreset("auth", 5, 15 * 60),
    "api": RateLimitPreset("api", 60, 60),
    "read": RateLimitPreset("read", 100, 60),
    "write": RateLimitPreset("write", 20, 60),
    "sensitive": RateLimitPreset("sensitive", 10, 60 * 60),
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window counter per key."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._hits = 0

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        self._hits += 1
        if self._hits % PRUNE_EVERY == 0:
            self._prune(now)

        window = self._windows.get(key)
        if window is None or window.reset_at <= now:
            window = _Window(count=0, reset_at=now + window_seconds)
            self._windows[key] = window

        if window.count >= limit:
            return RateLimitResult(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=window.reset_at,
                retry_after=max(1, int(window.reset_at - now + 0.999)),
            )
        window.count += 1
        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - window.count),
            reset_at=window.reset_at,
            retry_after=0,
        )

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if w.reset_at <= now]
        for k in expired:
            del self._windows[k]
