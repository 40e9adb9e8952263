"""PostgreSQL metrics read from the statistics views."""

import time
from typing import Any

from storepulse.adapters.collectors.base import guard
from storepulse.core.ports import DatabasePort

SLOW_QUERY_MEAN_MS = 1000.0

_ACTIVE_CONNECTIONS = "SELECT count(*) FROM pg_stat_activity WHERE state = 'active'"

_CACHE_HIT_RATIO = """
SELECT sum(blks_hit) AS hits, sum(blks_read) AS reads
FROM pg_stat_database
"""

_TRANSACTIONS = """
SELECT sum(xact_commit) AS committed,
       sum(xact_rollback) AS rolled_back,
       sum(deadlocks) AS deadlocks
FROM pg_stat_database
"""

_BUFFERS = """
SELECT buffers_clean, buffers_backend, buffers_alloc
FROM pg_stat_bgwriter
"""

_TOP_STATEMENTS = """
SELECT query, calls, total_exec_time AS total_time, mean_exec_time AS mean_time, rows
FROM pg_stat_statements
ORDER BY total_exec_time DESC
LIMIT 10
"""

_TOTAL_CALLS = "SELECT sum(calls) FROM pg_stat_statements"

_TABLE_COUNT = """
SELECT count(*) FROM information_schema.tables
WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
"""

_LARGEST_TABLES = """
SELECT relname AS table_name,
       pg_total_relation_size(relid) AS total_size,
       n_live_tup AS row_count
FROM pg_stat_user_tables
ORDER BY pg_total_relation_size(relid) DESC
LIMIT 10
"""

_TABLE_ACTIVITY = """
SELECT sum(seq_scan) AS seq_scans,
       sum(idx_scan) AS index_scans,
       sum(n_tup_ins) AS inserts,
       sum(n_tup_upd) AS updates,
       sum(n_tup_del) AS deletes,
       sum(n_live_tup) AS live_rows,
       sum(n_dead_tup) AS dead_rows
FROM pg_stat_user_tables
"""

_LOCKS_BY_MODE = """
SELECT mode, count(*) AS total, count(*) FILTER (WHERE NOT granted) AS waiting
FROM pg_locks
GROUP BY mode
"""

_BLOCKING = """
SELECT blocked.pid AS blocked_pid,
       blocking.pid AS blocking_pid,
       blocked.query AS blocked_query
FROM pg_stat_activity blocked
JOIN pg_stat_activity blocking
  ON blocking.pid = ANY(pg_blocking_pids(blocked.pid))
"""

_REPLICAS = """
SELECT client_addr, state, sync_state,
       EXTRACT(EPOCH FROM replay_lag) AS lag_seconds
FROM pg_stat_replication
"""

_REPLAY_LAG = """
SELECT EXTRACT(EPOCH FROM now() - pg_last_xact_replay_timestamp())
"""


def _number(value: Any) -> float | int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return float(value)


class DatabaseMetricsCollector:
    """Collects connection, performance, query, table, lock and replication
    metrics from a PostgreSQL server.

    The connection is injected; nothing is opened lazily here.
    """

    def __init__(self, database: DatabasePort, host: str = "", name: str = "") -> None:
        self._db = database
        self._host = host
        self._name = name

    def collect(self) -> dict[str, Any]:
        return {
            "connection": guard(
                {"host": self._host, "database": self._name, "connected": False},
                self._connection,
            ),
            "performance": guard({"cache_hit_ratio": 0.0}, self._performance),
            "queries": guard(
                {"total_queries": 0, "top_queries": [], "slow_queries": []},
                self._queries,
            ),
            "tables": guard({"count": 0, "largest": []}, self._tables),
            "locks": guard({"total": 0, "waiting": 0, "by_mode": {}}, self._locks),
            "replication": guard({"is_replica": False, "replicas": []}, self._replication),
        }

    def _connection(self) -> dict[str, Any]:
        start = time.perf_counter()
        version = self._db.fetch_value("SELECT version()")
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        return {
            "connected": True,
            "connection_time": elapsed_ms,
            "version": version,
            "active_connections": _number(self._db.fetch_value(_ACTIVE_CONNECTIONS)),
            "max_connections": int(self._db.fetch_value("SHOW max_connections") or 0),
        }

    def _performance(self) -> dict[str, Any]:
        blocks = self._db.fetch_one(_CACHE_HIT_RATIO) or {}
        hits = _number(blocks.get("hits"))
        reads = _number(blocks.get("reads"))
        total = hits + reads
        transactions = self._db.fetch_one(_TRANSACTIONS) or {}
        committed = _number(transactions.get("committed"))
        rolled_back = _number(transactions.get("rolled_back"))
        buffers = self._db.fetch_one(_BUFFERS) or {}
        return {
            "cache_hit_ratio": round(hits / total * 100, 2) if total else 0.0,
            "transactions": {
                "total": committed + rolled_back,
                "committed": committed,
                "rolled_back": rolled_back,
                "deadlocks": _number(transactions.get("deadlocks")),
            },
            "buffers": {key: _number(value) for key, value in buffers.items()},
        }

    def _queries(self) -> dict[str, Any]:
        top = [
            {
                "query": row.get("query", ""),
                "calls": _number(row.get("calls")),
                "total_time": round(_number(row.get("total_time")), 2),
                "mean_time": round(_number(row.get("mean_time")), 2),
                "rows": _number(row.get("rows")),
            }
            for row in self._db.fetch_all(_TOP_STATEMENTS)
        ]
        return {
            "total_queries": _number(self._db.fetch_value(_TOTAL_CALLS)),
            "top_queries": top,
            "slow_queries": [q for q in top if q["mean_time"] > SLOW_QUERY_MEAN_MS],
        }

    def _tables(self) -> dict[str, Any]:
        largest = [
            {
                "name": row.get("table_name"),
                "size": _number(row.get("total_size")),
                "rows": _number(row.get("row_count")),
            }
            for row in self._db.fetch_all(_LARGEST_TABLES)
        ]
        activity = self._db.fetch_one(_TABLE_ACTIVITY) or {}
        return {
            "count": _number(self._db.fetch_value(_TABLE_COUNT)),
            "largest": largest,
            "total_size": sum(t["size"] for t in largest),
            "activity": {key: _number(value) for key, value in activity.items()},
        }

    def _locks(self) -> dict[str, Any]:
        by_mode = {
            row["mode"]: {
                "total": _number(row.get("total")),
                "waiting": _number(row.get("waiting")),
            }
            for row in self._db.fetch_all(_LOCKS_BY_MODE)
        }
        blocking = self._db.fetch_all(_BLOCKING)
        return {
            "total": sum(mode["total"] for mode in by_mode.values()),
            "waiting": sum(mode["waiting"] for mode in by_mode.values()),
            "by_mode": by_mode,
            "blocking": [
                {
                    "blocked_pid": row.get("blocked_pid"),
                    "blocking_pid": row.get("blocking_pid"),
                    "query": row.get("blocked_query", ""),
                }
                for row in blocking
            ],
        }

    def _replication(self) -> dict[str, Any]:
        is_replica = bool(self._db.fetch_value("SELECT pg_is_in_recovery()"))
        if is_replica:
            lag = self._db.fetch_value(_REPLAY_LAG)
            return {
                "is_replica": True,
                "role": "replica",
                "lag_seconds": round(_number(lag), 2),
                "replicas": [],
            }
        replicas = [
            {
                "client": str(row.get("client_addr") or ""),
                "state": row.get("state"),
                "sync_state": row.get("sync_state"),
                "lag_seconds": round(_number(row.get("lag_seconds")), 2),
            }
            for row in self._db.fetch_all(_REPLICAS)
        ]
        return {"is_replica": False, "role": "primary", "replicas": replicas}
