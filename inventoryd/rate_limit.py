"""
Rate limiting module for inventoryd.

Provides sliding window rate limiting with per-key tracking. The HTTP
transport uses it to bound manual refreshes, which each run every probe.
"""

import time
import threading
from collections import defaultdict, deque
from typing import Dict, Optional
from dataclasses import dataclass


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    reset_at: float
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Sliding window rate limiter.

    Thread-safe; each key keeps a deque of hit times inside the window.
    """

    def __init__(self, rpm: int, window_seconds: int = 60, clock=time.monotonic):
        """
        Args:
            rpm: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
            clock: time source, seconds as float
        """
        self._limit = max(1, rpm)
        self._window = window_seconds
        self._clock = clock
        self._hits: Dict[str, deque] = defaultdict(deque)
        self._lock = threading.RLock()

    @property
    def limit(self) -> int:
        return self._limit

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def check(self, key: str) -> RateLimitResult:
        """
        Record a request for ``key`` if it fits in the window.

        Rejected requests are not recorded.
        """
        now = self._clock()
        window_start = now - self._window

        with self._lock:
            q = self._hits[key]
            while q and q[0] <= window_start:
                q.popleft()

            count = len(q)
            reset_at = (q[0] + self._window) if q else (now + self._window)

            if count >= self._limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(0.0, q[0] + self._window - now)
                )

            q.append(now)
            return RateLimitResult(
                allowed=True,
                remaining=self._limit - count - 1,
                reset_at=reset_at
            )

    def get_stats(self, key: str) -> Dict[str, int]:
        """Current count, limit and remaining for ``key``."""
        window_start = self._clock() - self._window

        with self._lock:
            count = sum(1 for t in self._hits.get(key, ()) if t > window_start)
            return {
                "current": count,
                "limit": self._limit,
                "remaining": max(0, self._limit - count),
                "window_seconds": self._window
            }

    def reset(self, key: Optional[str] = None) -> None:
        """Reset counters for ``key``, or for every key."""
        with self._lock:
            if key:
                self._hits.pop(key, None)
            else:
                self._hits.clear()
