"""In-process cache with per-entry expiry."""

import threading
import time
from typing import Any


class InMemoryCache:
    """Thread-safe implementation of CachePort backed by a dict.

    Expired entries are dropped lazily on access. Hit, miss, set and delete
    counts are kept for the cache collector.
    """

    def __init__(self) -> None:
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                self._stats["misses"] += 1
                return default
            value, expires_at = item
            if expires_at is not None and expires_at <= time.time():
                del self._data[key]
                self._stats["misses"] += 1
                return default
            self._stats["hits"] += 1
            return value

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = time.time() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (value, expires_at)
            self._stats["sets"] += 1

    def forget(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._stats["deletes"] += 1

    def __len__(self) -> int:
        now = time.time()
        with self._lock:
            return sum(
                1 for _, expires_at in self._data.values()
                if expires_at is None or expires_at > now
            )

    def stats(self) -> dict[str, Any]:
        """Return counters, live entry count and hit ratio as a percentage."""
        with self._lock:
            stats: dict[str, Any] = dict(self._stats)
        lookups = stats["hits"] + stats["misses"]
        stats["entries"] = len(self)
        stats["hit_ratio"] = round(stats["hits"] / lookups * 100, 2) if lookups else 0.0
        return stats

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
