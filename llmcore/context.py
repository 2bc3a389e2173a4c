"""
Execution context — the process-wide toggles and shared resources an
executor reads: debug logging, caching, an optional rate limiter, the
default retry policy, usage stats and lifecycle hooks.

The core owns no globals. A context is built explicitly (or from
settings) and handed to every Executor / BatchExecutor that should share
it; `ExecutionContext.default()` gives one lazily-created instance for
callers that do not care.

Usage:
    from llmcore.context import ExecutionContext
    from llmcore.llm.ratelimit import TokenBucket

    ctx = ExecutionContext(cache_enabled=True, limiter=TokenBucket.per_second(5))
    executor = Executor(provider, context=ctx)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from llmcore.config.schema import CoreSettings
from llmcore.llm.cache import ResponseCache
from llmcore.llm.ratelimit import Limiter, TokenBucket
from llmcore.llm.retry import RetryPolicy
from llmcore.observability.hooks import Hooks
from llmcore.observability.stats import UsageStats


_default_context: Optional["ExecutionContext"] = None


@dataclass
class ExecutionContext:
    debug: bool = False
    cache_enabled: bool = False
    cache: ResponseCache = field(default_factory=ResponseCache)
    limiter: Optional[Limiter] = None
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy.default)
    stats: UsageStats = field(default_factory=UsageStats)
    hooks: Hooks = field(default_factory=Hooks)

    @classmethod
    def from_settings(cls, settings: CoreSettings) -> "ExecutionContext":
        return cls(
            debug=settings.debug,
            cache_enabled=settings.cache.enabled,
            cache=ResponseCache(
                max_entries=settings.cache.max_entries,
                ttl_seconds=settings.cache.ttl_seconds,
            ),
            limiter=settings.rate_limit.to_limiter(),
            retry_policy=settings.retry.to_policy(),
        )

    @classmethod
    def default(cls) -> "ExecutionContext":
        """The shared default context (created on first use)."""
        global _default_context
        if _default_context is None:
            _default_context = cls()
        return _default_context

    @classmethod
    def reset_default(cls) -> None:
        global _default_context
        _default_context = None

    # --- Toggles ---

    def enable_cache(self, enabled: bool = True) -> None:
        self.cache_enabled = enabled

    def set_rate_limit(self, requests_per_second: Optional[float]) -> None:
        """Install a per-second token bucket, or remove throttling with None."""
        if requests_per_second is None:
            self.limiter = None
        else:
            self.limiter = TokenBucket.per_second(requests_per_second)

    @property
    def log_level(self) -> int:
        """Level for per-request diagnostics: INFO when debug is on, else DEBUG."""
        return logging.INFO if self.debug else logging.DEBUG
