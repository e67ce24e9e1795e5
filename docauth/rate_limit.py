"""
Rate limiting module for DocAuth.

Sliding window limiter keyed by client and endpoint, used to throttle
challenge issuance and assertion verification.
"""

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Sliding window rate limiter.

    Thread-safe; one deque of hit timestamps per key.
    """

    def __init__(self, rpm: int, window_seconds: int = 60, clock: Callable[[], float] = time.time):
        self._limit = max(1, rpm)
        self._window = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def check(self, key: str) -> RateLimitResult:
        """
        Record a hit for `key` unless the window is full.

        Args:
            key: Identifier for rate limiting (e.g. "challenge:ip:10.0.0.1")

        Returns:
            RateLimitResult with allowed status and metadata
        """
        now = self._clock()
        window_start = now - self._window

        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(window_start)
                self._last_sweep = now

            q = self._hits[key]
            while q and q[0] < window_start:
                q.popleft()

            if len(q) >= self._limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    retry_after=max(0.0, q[0] + self._window - now)
                )

            q.append(now)
            return RateLimitResult(allowed=True, remaining=self._limit - len(q))

    def _sweep(self, window_start: float) -> None:
        # Caller holds self._lock.
        idle = [k for k, q in self._hits.items() if not q or q[-1] < window_start]
        for k in idle:
            del self._hits[k]

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self, key: Optional[str] = None) -> None:
        """Reset one key, or every key when None."""
        with self._lock:
            if key:
                self._hits.pop(key, None)
            else:
                self._hits.clear()
