"""Namespaced in-memory TTL store for API responses.

Entries are keyed by ``(namespace, key)`` and expire lazily: a stale entry is
dropped the first time a lookup observes it. ``cleanup()`` evicts everything
stale in one pass for callers that want memory back sooner.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Sized


@dataclass
class CacheEntry:
    """A stored value with its expiry on the store's clock."""

    value: Any
    expires_at: float
    created_at: float


@dataclass
class CacheStats:
    """Point-in-time counters for a store."""

    size: int
    hits: int
    misses: int
    sets: int
    deletes: int
    evictions: int

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Percentage of lookups that were hits, 0.0 before any lookup."""
        if not self.total_requests:
            return 0.0
        return round(self.hits / self.total_requests * 100, 2)

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "total_requests": self.total_requests,
        }


@dataclass
class MemoryInfo:
    """Approximate memory held by cached entries."""

    entries: int
    approximate_bytes: int

    def to_dict(self) -> dict:
        return {
            "entries": self.entries,
            "approximate_bytes": self.approximate_bytes,
            "approximate_kb": round(self.approximate_bytes / 1024, 2),
            "approximate_mb": round(self.approximate_bytes / (1024 * 1024), 2),
        }


def _approximate_size(value: Any) -> int:
    try:
        return len(json.dumps(value))
    except (TypeError, ValueError):
        if isinstance(value, Sized):
            return len(value)
        return len(repr(value))


class TTLStore:
    """Thread-safe TTL cache with namespace-wide invalidation."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        """Return the cached value if still fresh, else ``default``."""
        with self._lock:
            entry = self._entries.get((namespace, key))
            if entry is None:
                self._misses += 1
                return default
            if self._clock() >= entry.expires_at:
                del self._entries[(namespace, key)]
                self._misses += 1
                self._evictions += 1
                return default
            self._hits += 1
            return entry.value

    def set(self, namespace: str, key: str, value: Any, ttl: float) -> None:
        """Store a value for ``ttl`` seconds.

        A non-positive ttl stores an entry that is already stale, so the next
        lookup is a miss.
        """
        now = self._clock()
        with self._lock:
            self._entries[(namespace, key)] = CacheEntry(
                value=value,
                expires_at=now + ttl,
                created_at=now,
            )
            self._sets += 1

    def has(self, namespace: str, key: str) -> bool:
        missing = object()
        return self.get(namespace, key, default=missing) is not missing

    def delete(self, namespace: str, key: str) -> bool:
        with self._lock:
            if self._entries.pop((namespace, key), None) is None:
                return False
            self._deletes += 1
            return True

    def delete_namespace(self, namespace: str) -> int:
        """Remove every entry in a namespace and return how many went."""
        with self._lock:
            keys = [k for k in self._entries if k[0] == namespace]
            for k in keys:
                del self._entries[k]
            self._deletes += len(keys)
            return len(keys)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._deletes += count
            return count

    def get_or_set(
        self,
        namespace: str,
        key: str,
        loader: Callable[[], Any],
        ttl: float,
    ) -> Any:
        """Return the cached value or load, store and return a fresh one.

        ``None`` results are returned but not cached.
        """
        missing = object()
        cached = self.get(namespace, key, default=missing)
        if cached is not missing:
            return cached
        value = loader()
        if value is not None:
            self.set(namespace, key, value, ttl)
        return value

    def cleanup(self) -> int:
        """Evict all stale entries. Returns the number evicted."""
        with self._lock:
            now = self._clock()
            stale = [k for k, entry in self._entries.items() if now >= entry.expires_at]
            for k in stale:
                del self._entries[k]
            self._evictions += len(stale)
            return len(stale)

    def namespaces(self) -> dict[str, int]:
        """Entry count per namespace, stale entries included."""
        counts: dict[str, int] = {}
        with self._lock:
            for namespace, _key in self._entries:
                counts[namespace] = counts.get(namespace, 0) + 1
        return counts

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                deletes=self._deletes,
                evictions=self._evictions,
            )

    def memory_info(self) -> MemoryInfo:
        with self._lock:
            items = list(self._entries.items())
        total = 0
        for (namespace, key), entry in items:
            total += len(namespace) + len(key) + 1
            total += _approximate_size(entry.value)
        return MemoryInfo(entries=len(items), approximate_bytes=total)
