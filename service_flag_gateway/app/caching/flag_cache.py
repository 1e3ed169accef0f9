"""
In-process LRU cache of signed flag URLs.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger


@dataclass(frozen=True)
class CacheEntry:
    """A resolved signed URL and its freshness window (monotonic seconds)."""

    key: str
    url: str
    created_at: float
    expires_at: float

    def __post_init__(self):
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class CacheOutcome(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"


@dataclass(frozen=True)
class CacheLookup:
    outcome: CacheOutcome
    entry: Optional[CacheEntry] = None

    @property
    def url(self) -> Optional[str]:
        return self.entry.url if self.entry else None


class FlagCache:
    """Bounded TTL cache with stale reads.

    An entry is fresh until ``expires_at``, stale (still served) until
    ``expires_at + grace_seconds``, and dropped on the first read after that.
    Capacity eviction is least-recently-used. Failures are never cached.
    """

    def __init__(
        self,
        max_items: int = 500,
        ttl_seconds: float = 42900,
        grace_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self.grace_seconds = grace_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "stale_hits": 0, "misses": 0, "evictions": 0, "expirations": 0}
        self.logger = get_logger("flag_gateway.cache")

    def now(self) -> float:
        return self._clock()

    def new_entry(self, key: str, url: str) -> CacheEntry:
        """Build an entry that is fresh for ``ttl_seconds`` from now."""
        created_at = self._clock()
        return CacheEntry(key=key, url=url, created_at=created_at, expires_at=created_at + self.ttl_seconds)

    def get(self, key: str) -> CacheLookup:
        """Look up ``key``; never blocks on I/O."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return CacheLookup(CacheOutcome.MISS)

            if now >= entry.expires_at + self.grace_seconds:
                del self._entries[key]
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return CacheLookup(CacheOutcome.MISS)

            self._entries.move_to_end(key)
            if entry.is_fresh(now):
                self._stats["hits"] += 1
                return CacheLookup(CacheOutcome.FRESH, entry)

            self._stats["stale_hits"] += 1
            return CacheLookup(CacheOutcome.STALE, entry)

    def put(self, key: str, entry: CacheEntry) -> None:
        """Insert or overwrite ``key``, evicting the least recently used entry when full."""
        if entry.key != key:
            raise ValueError(f"Entry key {entry.key!r} does not match {key!r}")

        evicted = []
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_items:
                evicted_key, _ = self._entries.popitem(last=False)
                self._stats["evictions"] += 1
                evicted.append(evicted_key)

        if evicted:
            self.logger.debug("Evicted least recently used entries", keys=evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Cache statistics for the health endpoint."""
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.max_items,
                "ttl_seconds": self.ttl_seconds,
                "grace_seconds": self.grace_seconds,
                **self._stats,
            }
