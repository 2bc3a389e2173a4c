"""
Cumulative usage statistics for an execution context.

Counters are updated from many concurrent calls; a single lock guards
every update and snapshot.

Usage:
    stats = UsageStats()
    stats.record_request(prompt_tokens=120, completion_tokens=48, latency_ms=812.0)
    stats.get_usage_stats()["total_tokens"]   # 168
"""

from __future__ import annotations

import threading
from typing import Any


class UsageStats:
    """Thread-safe request/token/error/cache-hit counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self.requests = 0
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.errors = 0
        self.cache_hits = 0
        self.retries = 0
        self.total_latency_ms = 0.0

    # --- Recording ---

    def record_request(
        self,
        *,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        latency_ms: float = 0.0,
        retries: int = 0,
    ) -> None:
        with self._lock:
            self.requests += 1
            self.prompt_tokens += prompt_tokens
            self.completion_tokens += completion_tokens
            self.total_latency_ms += latency_ms
            self.retries += retries

    def record_error(self) -> None:
        with self._lock:
            self.errors += 1

    def record_cache_hit(self) -> None:
        with self._lock:
            self.cache_hits += 1

    # --- Reporting ---

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def get_usage_stats(self) -> dict[str, Any]:
        with self._lock:
            avg = self.total_latency_ms / self.requests if self.requests else 0.0
            return {
                "requests": self.requests,
                "prompt_tokens": self.prompt_tokens,
                "completion_tokens": self.completion_tokens,
                "total_tokens": self.prompt_tokens + self.completion_tokens,
                "errors": self.errors,
                "cache_hits": self.cache_hits,
                "retries": self.retries,
                "total_latency_ms": round(self.total_latency_ms, 2),
                "avg_latency_ms": round(avg, 2),
            }

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()
