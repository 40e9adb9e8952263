"""DatabasePort over a DB-API 2.0 connection."""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from typing import Any

logger = logging.getLogger(__name__)


class DBAPIDatabase:
    """Adapter from any DB-API 2.0 connection to DatabasePort.

    Queries are serialized with a lock, since DB-API connections are not
    guaranteed to be thread-safe. Query count, cumulative time and slow
    queries are tracked until ``reset_counters`` is called, typically at the
    start of each request.

    Args:
        connect: Zero-argument callable returning a connection; called
            lazily and again after ``close``.
        slow_query_ms: Duration above which a query counts as slow.
    """

    def __init__(
        self, connect: Callable[[], Any], slow_query_ms: float = 1000.0
    ) -> None:
        self._connect = connect
        self._connection: Any = None
        self._slow_query_ms = slow_query_ms
        self._lock = threading.RLock()
        self._counters = {"queries": 0, "query_time": 0.0, "slow_queries": 0}

    @property
    def connection(self) -> Any:
        with self._lock:
            if self._connection is None:
                self._connection = self._connect()
            return self._connection

    def _execute(self, sql: str, params: Sequence[Any]) -> tuple[list[str], list[Any]]:
        """Run one statement in its own transaction.

        Success commits and failure rolls back, so a failed statement never
        leaves the connection in an aborted transaction and ``now()`` moves
        on between statements.
        """
        with self._lock:
            connection = self.connection
            cursor = connection.cursor()
            start = time.perf_counter()
            try:
                cursor.execute(sql, tuple(params))
                rows = cursor.fetchall() if cursor.description else []
                columns = [col[0] for col in cursor.description or []]
                connection.commit()
            except Exception:
                self._rollback(connection)
                raise
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                self._counters["queries"] += 1
                self._counters["query_time"] += elapsed_ms
                if elapsed_ms > self._slow_query_ms:
                    self._counters["slow_queries"] += 1
                cursor.close()
        return columns, rows

    def _rollback(self, connection: Any) -> None:
        try:
            connection.rollback()
        except Exception as exc:
            # The next statement reconnects.
            logger.warning(
                "Rollback failed, dropping connection", extra={"error": str(exc)}
            )
            self._connection = None

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        columns, rows = self._execute(sql, params)
        return [dict(zip(columns, row)) for row in rows]

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def fetch_value(self, sql: str, params: Sequence[Any] = ()) -> Any:
        _, rows = self._execute(sql, params)
        if not rows:
            return None
        return rows[0][0]

    def ping(self) -> None:
        self.fetch_value("SELECT 1")

    def counters(self) -> dict[str, float]:
        with self._lock:
            counters = dict(self._counters)
        counters["query_time"] = round(counters["query_time"], 2)
        return counters

    def reset_counters(self) -> None:
        with self._lock:
            self._counters = {"queries": 0, "query_time": 0.0, "slow_queries": 0}

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
