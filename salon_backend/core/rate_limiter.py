from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from salon_backend.core.config import (
    API_RATE_LIMIT,
    API_RATE_WINDOW_SECONDS,
    LOGIN_RATE_LIMIT,
    LOGIN_RATE_WINDOW_SECONDS,
)


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


class RateLimiterService(ABC):
    @abstractmethod
    def check(self, *, identifier: str, scope: str = "default") -> RateLimitDecision:
        """Decide whether one more request from identifier within scope may proceed."""

    @abstractmethod
    def reset(self, *, identifier: str | None = None) -> None:
        """Forget recorded hits, for one identifier or for all of them."""


class InMemoryRateLimiterService(RateLimiterService):
    """Sliding-window limiter keyed by client identifier (usually the IP).

    Counters live in process memory, so limits are per server instance. A
    multi-instance deployment needs a shared store behind the same interface.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._store: dict[tuple[str, str], deque[float]] = {}
        self._lock = Lock()

    def check(self, *, identifier: str, scope: str = "default") -> RateLimitDecision:
        now = self._clock()
        key = (scope, identifier)

        with self._lock:
            bucket = self._store.setdefault(key, deque())
            cutoff = now - self.window_seconds
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= self.limit:
                retry_after = max(1, int(self.window_seconds - (now - bucket[0])))
                return RateLimitDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    retry_after_seconds=retry_after,
                )

            bucket.append(now)
            remaining = max(0, self.limit - len(bucket))
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=remaining,
                retry_after_seconds=0,
            )

    def reset(self, *, identifier: str | None = None) -> None:
        with self._lock:
            if identifier is None:
                self._store.clear()
                return
            for key in [key for key in self._store if key[1] == identifier]:
                del self._store[key]


login_rate_limiter = InMemoryRateLimiterService(
    limit=LOGIN_RATE_LIMIT, window_seconds=LOGIN_RATE_WINDOW_SECONDS
)
api_rate_limiter = InMemoryRateLimiterService(
    limit=API_RATE_LIMIT, window_seconds=API_RATE_WINDOW_SECONDS
)


def get_login_rate_limiter() -> RateLimiterService:
    return login_rate_limiter
