"""
Fixed-window rate limiter (in-memory, per process).

One window per key.  A window opens on the first request for a key and
closes at ``reset_at``; the first request after that opens a fresh one.
Callers namespace their keys (``"api:<ip>"``, ``"login:<ip>"``) so
independent limits never share a counter.

Like the session registry this state is process-local: with several
worker processes each one enforces its own budget.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    count: int
    limit: int
    remaining: int
    reset_at: float
    retry_after: float


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def get(self, key: str) -> RateLimitWindow | None:
        return self._windows.get(key)

    def check_and_increment(self, key: str, window_seconds: float, max_requests: int) -> RateLimitResult:
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now > window.reset_at:
            window = RateLimitWindow(count=0, reset_at=now + window_seconds)
            self._windows[key] = window

        window.count += 1
        allowed = window.count <= max_requests
        if not allowed:
            logger.warning("Rate limit exceeded for %s (%d/%d)", key, window.count, max_requests)

        return RateLimitResult(
            allowed=allowed,
            count=window.count,
            limit=max_requests,
            remaining=max(0, max_requests - window.count),
            reset_at=window.reset_at,
            retry_after=max(0.0, window.reset_at - now),
        )

    def sweep(self) -> int:
        """Drop closed windows.  Returns how many were removed."""
        now = self._clock()
        stale = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in stale:
            del self._windows[key]
        return len(stale)

    def clear(self) -> None:
        self._windows.clear()


rate_limiter = RateLimiter()
