"""
In-memory request cache.

Entries expire `max_age` seconds after insertion, whether or not they have
been read since. When the cache is full the entry that was accessed least
recently is evicted. Nothing is persisted: a new process starts empty.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    last_accessed_at: float


@dataclass
class CacheStats:
    """Snapshot of cache performance counters."""

    hits: int = 0
    misses: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


def _copy_value(value: Any) -> Any:
    # Lists of frozen results are copied shallowly so callers can't mutate the entry
    if isinstance(value, list):
        return list(value)
    return value


class RequestCache:
    """TTL-aware LRU cache keyed by canonical request strings."""

    def __init__(
        self,
        max_entries: int = 100,
        max_age: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.max_age = max_age
        self._clock = clock
        # Ordered from least to most recently accessed
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def _is_stale(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at > self.max_age

    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the cached value, or None if absent or stale."""
        entry = self._entries.get(key)
        now = self._clock()
        if entry is None or self._is_stale(entry, now):
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return None

        entry.last_accessed_at = now
        self._entries.move_to_end(key)
        self._hits += 1
        return _copy_value(entry.value)

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.debug("Cache entry evicted", extra={"event": "cache_evict", "key": evicted_key})

        self._entries[key] = CacheEntry(
            key=key,
            value=_copy_value(value),
            inserted_at=now,
            last_accessed_at=now,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop every stale entry. Returns how many were removed."""
        now = self._clock()
        stale = [k for k, e in self._entries.items() if self._is_stale(e, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))
