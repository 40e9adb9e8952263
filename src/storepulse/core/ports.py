"""Port interfaces for the collaborators of the monitoring core.

These protocols define the contracts that adapters must implement.
The core depends only on these interfaces, not concrete implementations.
"""

from collections.abc import AsyncIterable, Sequence
from typing import Any, Protocol, runtime_checkable

from storepulse.core.models import Alert, AlertRule, CheckResult, LogEntry


@runtime_checkable
class MetricsCollector(Protocol):
    """Port for a metrics collector.

    Implementations return a JSON-compatible mapping and guard their own
    sub-probes, reporting failures as an ``"error"`` field in the affected
    section rather than raising.
    """

    def collect(self) -> dict[str, Any]:
        """Return a fresh metric bundle."""
        ...


@runtime_checkable
class CachePort(Protocol):
    """Port for a key/value cache with per-entry time to live.

    Examples: InMemoryCache, SQLiteCache, RedisCache.
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or default when missing or expired."""
        ...

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a JSON-compatible value.

        Args:
            key: Cache key.
            value: Value to store.
            ttl: Lifetime in seconds. None keeps the entry until forgotten.
        """
        ...

    def forget(self, key: str) -> None:
        """Remove a key if present."""
        ...


@runtime_checkable
class DatabasePort(Protocol):
    """Port for read-only SQL access used by collectors and probes."""

    def fetch_all(
        self, sql: str, params: Sequence[Any] = ()
    ) -> list[dict[str, Any]]:
        """Run a query and return every row as a column-name mapping."""
        ...

    def fetch_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> dict[str, Any] | None:
        """Run a query and return the first row, or None."""
        ...

    def fetch_value(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Run a query and return the first column of the first row."""
        ...

    def ping(self) -> None:
        """Round-trip a trivial query, raising on failure."""
        ...

    def counters(self) -> dict[str, float]:
        """Return per-request query counters (queries, query_time, slow_queries)."""
        ...


@runtime_checkable
class EventDispatcherPort(Protocol):
    """Port for publishing domain events."""

    def dispatch(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


@runtime_checkable
class AlertChannel(Protocol):
    """Port for delivering a triggered alert.

    Implementations raise AlertChannelError (or any exception) on failure.
    """

    def send(self, alert: Alert) -> None:
        ...


@runtime_checkable
class RuleStoragePort(Protocol):
    """Port for durable alert rule storage."""

    def load(self) -> list[AlertRule]:
        ...

    def save(self, rules: list[AlertRule]) -> None:
        ...


@runtime_checkable
class HealthProbe(Protocol):
    """Port for a single synchronous health check."""

    def check(self) -> CheckResult:
        ...


@runtime_checkable
class LogStoragePort(Protocol):
    """Port for captured log storage.

    Writes are synchronous so that logging handlers can call them; reads are
    asynchronous for the HTTP adapter.
    Examples: RingBufferLogStorage, SQLiteLogStorage.
    """

    def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        ...

    def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogEntry]:
        """Read log entries since the given timestamp.

        Args:
            since: Unix timestamp. Returns entries with timestamp > since.
                   Default 0 returns all entries.
            level: Optional level filter, case-insensitive.

        Returns:
            Async iterable of LogEntry objects, ordered by timestamp ascending.
        """
        ...
