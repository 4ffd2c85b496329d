"""Time-bounded in-memory cache shared by the query and schema caches."""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value with its creation and expiry times."""
    value: T
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Cache performance statistics."""
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLCache(Generic[T]):
    """Thread-safe TTL cache with optional least-recently-used bound.

    Expired entries are treated as absent on read and evicted there, or by
    ``sweep``. When ``max_entries`` is set, inserting into a full cache evicts
    the least recently used entry.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now,
        name: str = "cache",
    ):
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of each entry.
            max_entries: Capacity bound, None for unbounded.
            clock: Source of the current time.
            name: Label used in log messages.
        """
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_entries = max_entries
        self.name = name
        self._clock = clock
        self._lock = Lock()
        self._entries: "OrderedDict[Hashable, CacheEntry[T]]" = OrderedDict()
        self._stats = CacheStats()

    def get(self, key: Hashable) -> Optional[T]:
        """Return the cached value, or None when missing or expired."""
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def get_entry(self, key: Hashable) -> Optional[CacheEntry[T]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats.expirations += 1
                self._stats.misses += 1
                return None

            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry

    def put(self, key: Hashable, value: T) -> CacheEntry[T]:
        """Store a value, replacing any existing entry for the key."""
        now = self._clock()
        entry = CacheEntry(value=value, created_at=now, expires_at=now + self.ttl)
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif self.max_entries is not None:
                while len(self._entries) >= self.max_entries:
                    self._evict_entry()
            self._entries[key] = entry
        return entry

    def _evict_entry(self) -> None:
        """Remove the least recently used entry (first in the OrderedDict)."""
        evicted_key, _ = self._entries.popitem(last=False)
        self._stats.evictions += 1
        logger.debug(f"Evicted {self.name} entry {evicted_key!r}")

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)

        if expired:
            logger.debug(f"Swept {len(expired)} expired {self.name} entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info(f"Cleared {self.name}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get_entry(key) is not None

    def get_statistics(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                'name': self.name,
                'entries': len(self._entries),
                'max_entries': self.max_entries,
                'ttl_seconds': self.ttl.total_seconds(),
                'hits': self._stats.hits,
                'misses': self._stats.misses,
                'evictions': self._stats.evictions,
                'expirations': self._stats.expirations,
                'hit_rate': self._stats.hit_rate,
            }
