"""Durable cache backed by SQLite."""

import json
import time
from typing import Any

from storepulse.adapters.storage.sqlite_base import (
    SyncConnectionManager,
    _safe_json_loads,
)

_CACHE_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires_at REAL
);
CREATE INDEX IF NOT EXISTS idx_cache_expires_at ON cache(expires_at);
"""

_SELECT_ENTRY = "SELECT value, expires_at FROM cache WHERE key = ?"

_UPSERT_ENTRY = """
INSERT INTO cache (key, value, expires_at) VALUES (?, ?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at
"""

_DELETE_ENTRY = "DELETE FROM cache WHERE key = ?"

_DELETE_EXPIRED = "DELETE FROM cache WHERE expires_at IS NOT NULL AND expires_at <= ?"

_COUNT_ENTRIES = "SELECT COUNT(*) FROM cache WHERE expires_at IS NULL OR expires_at > ?"


class SQLiteCache:
    """SQLite implementation of CachePort.

    Values are stored as JSON. Entries written with ``ttl=None`` never
    expire, which makes this adapter usable as the durable alert rule store.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._manager = SyncConnectionManager(db_path, _CACHE_SCHEMA)

    def get(self, key: str, default: Any = None) -> Any:
        with self._manager.lock, self._manager.connection() as conn:
            row = conn.execute(_SELECT_ENTRY, (key,)).fetchone()
        if row is None:
            return default
        value, expires_at = row
        if expires_at is not None and expires_at <= time.time():
            self.forget(key)
            return default
        return _safe_json_loads(value, default)

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = time.time() + ttl if ttl is not None else None
        payload = json.dumps(value, default=str)
        with self._manager.lock, self._manager.connection() as conn:
            conn.execute(_UPSERT_ENTRY, (key, payload, expires_at))
            conn.commit()

    def forget(self, key: str) -> None:
        with self._manager.lock, self._manager.connection() as conn:
            conn.execute(_DELETE_ENTRY, (key,))
            conn.commit()

    def purge_expired(self) -> int:
        """Delete expired entries and return how many were removed."""
        with self._manager.lock, self._manager.connection() as conn:
            cursor = conn.execute(_DELETE_EXPIRED, (time.time(),))
            conn.commit()
            return cursor.rowcount

    def count(self) -> int:
        with self._manager.lock, self._manager.connection() as conn:
            row = conn.execute(_COUNT_ENTRIES, (time.time(),)).fetchone()
        return row[0] if row else 0

    def close(self) -> None:
        self._manager.close()
