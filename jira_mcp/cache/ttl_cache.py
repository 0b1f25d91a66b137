# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""In-memory key-value cache with per-entry expiry.

Expired entries are invisible to ``get`` and evicted on access; ``sweep``
removes the rest in bulk. The lock is only held inside each single-step
operation, never across an await.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Cached value with absolute expiry time."""

    data: T
    expiry: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expiry


class TTLCache(Generic[T]):
    """Time-bounded in-process cache."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            default_ttl: Lifetime in seconds for entries set without a TTL.
            clock: Monotonic time source (injectable for tests).
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""
        ttl = self._default_ttl if ttl is None else ttl
        expiry = self._clock() + ttl
        with self._lock:
            self._entries[key] = CacheEntry(data=value, expiry=expiry)
        logger.debug("cache_set", key=key, ttl=ttl)

    def get(self, key: str) -> T | None:
        """Return the live value for ``key`` or None."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                self._evictions += 1
                return None
            self._hits += 1
            return entry.data

    def invalidate(self, key: str) -> bool:
        """Remove ``key``. Returns True if an entry was removed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Evict every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
        if expired:
            logger.debug("cache_sweep", evicted=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        """Hit/miss counters for diagnostics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": round(self._hits / total, 4) if total else 0.0,
            }
