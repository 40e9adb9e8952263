"""SQLite connection handling shared by the durable adapters."""

import asyncio
import json
import sqlite3
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, closing, contextmanager
from typing import Any

import aiosqlite

MEMORY = ":memory:"
BUSY_TIMEOUT = 5.0


def _safe_json_loads(data: str, default: Any = None) -> Any:
    """Decode JSON, falling back to default for corrupt or missing data."""
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError):
        return default


class SyncConnectionManager:
    """Hands out sqlite3 connections and creates the schema on first use.

    File databases get a fresh connection per ``connection()`` block, so any
    thread may use the manager. An in-memory database lives only as long as
    its connection, so one connection is opened and kept; callers sharing it
    between threads serialize on ``lock``.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self.lock = threading.RLock()
        self._ready = False
        self._shared: sqlite3.Connection | None = None

    @property
    def in_memory(self) -> bool:
        return self._db_path == MEMORY

    def _prepare(self) -> None:
        with self.lock:
            if self._ready:
                return
            if self.in_memory:
                self._shared = sqlite3.connect(MEMORY, check_same_thread=False)
                self._shared.executescript(self._schema)
            else:
                with closing(sqlite3.connect(self._db_path)) as conn:
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.executescript(self._schema)
                    conn.commit()
            self._ready = True

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        if not self._ready:
            self._prepare()
        if self._shared is not None:
            yield self._shared
            return
        with closing(sqlite3.connect(self._db_path, timeout=BUSY_TIMEOUT)) as conn:
            yield conn

    def close(self) -> None:
        """Drop the in-memory database; file databases need no cleanup."""
        with self.lock:
            if self._shared is not None:
                self._shared.close()
                self._shared = None
                self._ready = False


class AsyncConnectionManager:
    """Hands out aiosqlite connections to a file database for async readers.

    The schema is created once per manager, guarded by a lock created
    inside the running event loop.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        if db_path == MEMORY:
            raise ValueError("AsyncConnectionManager needs a file database")
        self._db_path = db_path
        self._schema = schema
        self._ready = False
        self._init_lock: asyncio.Lock | None = None

    async def _prepare(self) -> None:
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if self._ready:
                return
            async with aiosqlite.connect(self._db_path) as conn:
                await conn.executescript(self._schema)
                await conn.commit()
            self._ready = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        if not self._ready:
            await self._prepare()
        async with aiosqlite.connect(self._db_path, timeout=BUSY_TIMEOUT) as conn:
            yield conn
