"""Durable log capture in SQLite."""

import json
from collections.abc import AsyncIterable

from storepulse.adapters.storage.sqlite_base import (
    MEMORY,
    AsyncConnectionManager,
    SyncConnectionManager,
    _safe_json_loads,
)
from storepulse.core.models import LogEntry

_SCHEMA = """
CREATE TABLE IF NOT EXISTS captured_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created REAL NOT NULL,
    level TEXT NOT NULL COLLATE NOCASE,
    message TEXT NOT NULL,
    attributes TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS captured_logs_created ON captured_logs(created);
CREATE INDEX IF NOT EXISTS captured_logs_level ON captured_logs(level, created);
"""


class SQLiteLogStorage:
    """LogStoragePort backed by a SQLite file.

    Logging handlers write from arbitrary threads through sqlite3 while the
    HTTP adapter reads through aiosqlite, so both sides need the same file;
    ``:memory:`` is rejected. Levels compare case-insensitively.
    """

    def __init__(self, db_path: str) -> None:
        if db_path == MEMORY:
            raise ValueError("SQLiteLogStorage needs a file database")
        self._writer = SyncConnectionManager(db_path, _SCHEMA)
        self._reader = AsyncConnectionManager(db_path, _SCHEMA)

    def write(self, entry: LogEntry) -> None:
        row = (
            entry.timestamp,
            entry.level,
            entry.message,
            json.dumps(entry.attributes, default=str),
        )
        with self._writer.connection() as conn:
            conn.execute(
                "INSERT INTO captured_logs (created, level, message, attributes)"
                " VALUES (?, ?, ?, ?)",
                row,
            )
            conn.commit()

    async def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogEntry]:
        """Yield entries newer than since, oldest first."""
        sql = (
            "SELECT created, level, message, attributes FROM captured_logs"
            " WHERE created > ?"
        )
        params: list[float | str] = [since]
        if level is not None:
            sql += " AND level = ?"
            params.append(level)
        sql += " ORDER BY created, id"
        async with self._reader.connection() as conn:
            async with conn.execute(sql, params) as cursor:
                async for created, row_level, message, attributes in cursor:
                    yield LogEntry(
                        timestamp=created,
                        level=row_level,
                        message=message,
                        attributes=_safe_json_loads(attributes, {}),
                    )

    def delete_before(self, timestamp: float) -> int:
        """Delete entries older than timestamp and return how many went."""
        with self._writer.connection() as conn:
            removed = conn.execute(
                "DELETE FROM captured_logs WHERE created < ?", (timestamp,)
            ).rowcount
            conn.commit()
        return removed
