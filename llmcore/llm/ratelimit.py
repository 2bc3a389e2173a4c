"""
Token-bucket rate limiter shared by every outbound call.

Refill is lazy: each `allow()` adds elapsed-time × rate tokens, capped at
capacity. There is no background ticker. The bucket is the only state
here and is guarded by one lock held just for refill-and-decrement, so a
single TokenBucket may be shared by any number of concurrent tasks.

Usage:
    from llmcore.llm.ratelimit import TokenBucket

    limiter = TokenBucket.per_interval(60, 60.0)   # 60 requests per minute
    if limiter.allow():
        ...
    await limiter.wait(scope)                       # block until a token
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Protocol, runtime_checkable

from llmcore.scope import Scope

logger = logging.getLogger(__name__)


@runtime_checkable
class Limiter(Protocol):
    """Anything the executor can gate outbound calls on."""

    def allow(self) -> bool: ...

    async def wait(self, scope: Optional[Scope] = None) -> None: ...


class TokenBucket:
    """
    Classic token bucket.

    Args:
        rate: Tokens added per second.
        capacity: Maximum tokens held; the bucket starts full.
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        rate: float,
        capacity: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._rate = float(rate)
        self._capacity = float(capacity)
        self._tokens = float(capacity)
        self._clock = clock
        self._last_refill = clock()
        self._lock = threading.Lock()

    @classmethod
    def per_interval(cls, requests: int, interval: float, **kwargs) -> "TokenBucket":
        """`requests` per `interval` seconds, bursting up to `requests`."""
        return cls(rate=requests / interval, capacity=requests, **kwargs)

    @classmethod
    def per_second(cls, rps: float, burst: Optional[float] = None, **kwargs) -> "TokenBucket":
        """
        `rps` requests per second. Bursts default to twice the rate; the
        capacity never drops below one token so slow rates still admit calls.
        """
        capacity = burst if burst is not None else rps * 2
        return cls(rate=rps, capacity=max(capacity, 1.0), **kwargs)

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def tokens(self) -> float:
        """Current token level after a refill."""
        with self._lock:
            self._refill()
            return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_refill = now

    def allow(self) -> bool:
        """Take one token if available; never blocks."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def time_until_available(self) -> float:
        """Seconds until the next whole token, 0.0 if one is available now."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                return 0.0
            return (1.0 - self._tokens) / self._rate

    async def wait(self, scope: Optional[Scope] = None) -> None:
        """
        Block until a token is taken.

        Sleeps for the projected time until the next token, then retries
        `allow()`; another waiter may win the race, hence the loop.
        """
        scope = scope or Scope()
        waited = 0.0
        while not self.allow():
            delay = max(self.time_until_available(), 0.001)
            waited += delay
            await scope.sleep(delay)
        if waited:
            logger.debug("rate_limit_waited", extra={"waited_s": round(waited, 3)})
