"""
Response Cache — in-memory memoization of completed LLM calls.

Keys are a SHA-256 over (model, full message list, temperature, reasoning
level), so two structurally identical requests always hit the same entry.
Values are the completed text content only: streaming responses and
responses carrying tool calls are never stored.

By default the cache is unbounded and entries never expire. Pass
`max_entries` for LRU eviction and/or `ttl_seconds` for expiry.

Usage:
    from llmcore.llm.cache import ResponseCache

    cache = ResponseCache(max_entries=1000, ttl_seconds=600)
    key = ResponseCache.make_key(request)
    content = cache.get(key)
    if content is None:
        response = await provider.send(request, scope)
        cache.put(key, response.content, model=request.model)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from llmcore.llm.types import ChatRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cache Entry
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    """A cached response body with bookkeeping."""

    key: str
    content: str
    created_at: float
    expires_at: Optional[float] = None   # None = never
    hit_count: int = 0
    model: str = ""

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


# ---------------------------------------------------------------------------
# Response Cache
# ---------------------------------------------------------------------------

class ResponseCache:
    """
    Thread-safe content cache keyed by request content.

    One lock guards the map; it is held only for the lookup or insert
    itself, never while a provider call is in flight.
    """

    def __init__(
        self,
        *,
        max_entries: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

        self._hits: int = 0
        self._misses: int = 0
        self._evictions: int = 0
        self._stores: int = 0

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    # --- Key Generation ---

    @staticmethod
    def make_key(request: ChatRequest) -> str:
        """
        Deterministic key for a request.

        Temperature and reasoning are omitted when unset, so "no
        temperature" and "temperature 0.0" are different entries.
        """
        payload: dict[str, Any] = {
            "m": request.model,
            "msgs": [m.to_dict() for m in request.messages],
        }
        if request.temperature is not None:
            payload["t"] = request.temperature
        reasoning = request.reasoning_value
        if reasoning:
            payload["r"] = reasoning
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(raw.encode()).hexdigest()

    # --- Core Operations ---

    def get(self, key: str) -> Optional[str]:
        """Cached content for `key`, or None on a miss or expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                self._evictions += 1
                return None

            self._entries.move_to_end(key)
            entry.hit_count += 1
            self._hits += 1
            hit_count = entry.hit_count

        logger.debug(
            "cache_hit",
            extra={"key": key[:16], "model": entry.model, "hit_count": hit_count},
        )
        return entry.content

    def put(self, key: str, content: str, *, model: str = "") -> None:
        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]

            if self._max_entries is not None:
                while len(self._entries) >= self._max_entries:
                    evicted_key, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    logger.debug("cache_eviction", extra={"key": evicted_key[:16]})

            self._entries[key] = CacheEntry(
                key=key,
                content=content,
                created_at=now,
                expires_at=now + self._ttl if self._ttl is not None else None,
                model=model,
            )
            self._stores += 1

    def invalidate(self, key: str) -> bool:
        """Remove a specific entry. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Clear all cached entries. Returns the number cleared."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def cleanup_expired(self) -> int:
        if self._ttl is None:
            return 0
        now = self._clock()
        with self._lock:
            expired = [k for k, v in self._entries.items() if v.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
        return len(expired)

    # --- Stats ---

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            size = len(self._entries)
        return {
            "size": size,
            "max_entries": self._max_entries,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self.hit_rate, 3),
            "evictions": self._evictions,
            "stores": self._stores,
        }

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._stores = 0
