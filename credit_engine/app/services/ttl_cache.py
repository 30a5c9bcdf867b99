"""In-memory TTL cache for read-mostly data

Holds per-tenant hierarchy arenas and configuration snapshots. Entries are
disposable: any miss is rebuilt from the database, and writers invalidate
the tenant they touched.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """
    LRU cache with a time-to-live per entry

    ``clock`` is injectable so tests can move time without sleeping.
    ``generation`` increases on every invalidation and lets cached values
    carry the version of the data they were built from.
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        max_size: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.generation = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def put(self, key: str, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)
        self._entries.move_to_end(key)

    def invalidate(self, key: str) -> bool:
        self.generation += 1
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self.generation += 1
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
