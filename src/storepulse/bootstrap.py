"""Wiring of the monitoring manager from settings."""

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import redis

from storepulse.adapters.cache import InMemoryCache, RedisCache, SQLiteCache
from storepulse.adapters.collectors import (
    ApplicationMetricsCollector,
    BusinessMetricsCollector,
    CacheMetricsCollector,
    DatabaseMetricsCollector,
    HttpMetricsCollector,
    SystemMetricsCollector,
)
from storepulse.adapters.database import DBAPIDatabase
from storepulse.adapters.events import InMemoryEventDispatcher
from storepulse.adapters.logging import LogStorageHandler
from storepulse.adapters.notifiers import (
    EmailChannel,
    LogChannel,
    SlackChannel,
    WebhookChannel,
)
from storepulse.adapters.probes import (
    ApplicationCheck,
    CacheCheck,
    DatabaseCheck,
    MemoryCheck,
    StorageCheck,
)
from storepulse.adapters.storage import (
    CacheRuleStorage,
    RingBufferLogStorage,
    SQLiteLogStorage,
)
from storepulse.config import MonitoringSettings
from storepulse.core.alerts import AlertDispatcher
from storepulse.core.manager import MonitoringManager
from storepulse.core.ports import CachePort, DatabasePort, LogStoragePort


class UnsupportedDSNError(ValueError):
    """The database DSN scheme has no built-in driver."""


def connect_dsn(dsn: str, slow_query_ms: float = 1000.0) -> DBAPIDatabase:
    """Open a DatabasePort for a ``sqlite:///path`` DSN.

    Other databases are wired by passing a DBAPIDatabase built from the
    driver's connect function to build_monitor.
    """
    if not dsn.startswith("sqlite:///"):
        raise UnsupportedDSNError(f"Unsupported database DSN: {dsn}")
    path = dsn.removeprefix("sqlite:///") or ":memory:"
    return DBAPIDatabase(
        lambda: sqlite3.connect(path, check_same_thread=False),
        slow_query_ms=slow_query_ms,
    )


@dataclass
class Monitor:
    """A wired manager with the adapters it was built from."""

    manager: MonitoringManager
    settings: MonitoringSettings
    local_cache: InMemoryCache
    durable_cache: SQLiteCache
    shared_cache: RedisCache | None = None
    database: DatabasePort | None = None
    events: InMemoryEventDispatcher = field(default_factory=InMemoryEventDispatcher)


def build_alert_dispatcher(settings: MonitoringSettings) -> AlertDispatcher:
    alerting = settings.alerting
    return AlertDispatcher(
        {
            "log": LogChannel(),
            "email": EmailChannel(
                host=alerting.smtp_host,
                port=alerting.smtp_port,
                sender=alerting.email_from,
                recipients=alerting.email_to,
            ),
            "slack": SlackChannel(
                alerting.slack_webhook_url, timeout=alerting.http_timeout
            ),
            "webhook": WebhookChannel(alerting.webhook_url, timeout=alerting.http_timeout),
        }
    )


def build_monitor(
    settings: MonitoringSettings | None = None,
    *,
    database: DatabasePort | None = None,
    redis_client: redis.Redis | None = None,
) -> Monitor:
    """Build a MonitoringManager with every collector, probe and channel.

    Args:
        settings: Configuration; read from the environment when omitted.
        database: Storefront database. Defaults to ``settings.database_dsn``;
            without one the database and business collectors and the
            database probe are left out.
        redis_client: Shared cache client. Defaults to ``settings.redis_url``.

    Returns:
        The wired monitor.
    """
    settings = settings or MonitoringSettings()
    if database is None and settings.database_dsn:
        database = connect_dsn(settings.database_dsn, settings.slow_query_ms)
    if redis_client is None and settings.redis_url:
        redis_client = RedisCache.from_url(settings.redis_url).client

    local = InMemoryCache()
    cache_db = settings.resolve(settings.cache_db)
    cache_db.parent.mkdir(parents=True, exist_ok=True)
    durable = SQLiteCache(str(cache_db))
    shared = RedisCache(redis_client) if redis_client is not None else None
    manager_cache: CachePort = shared or durable

    benchmark: dict[str, CachePort] = {"local": local, "durable": durable}
    if shared is not None:
        benchmark["shared"] = shared

    storage_path = settings.resolve(settings.storage_path)
    disk_path = storage_path if storage_path.is_dir() else Path("/")
    collectors: dict[str, Any] = {
        "system": SystemMetricsCollector(disk_path=disk_path),
        "application": ApplicationMetricsCollector(settings),
        "cache": CacheMetricsCollector(
            local=local,
            redis_client=redis_client,
            benchmark=benchmark,
            iterations=settings.benchmark_iterations,
            payload_bytes=settings.benchmark_payload_bytes,
            deadline=settings.benchmark_deadline,
        ),
        "http": HttpMetricsCollector(
            database=database, cache=local, error_log=settings.resolve(settings.error_log)
        ),
    }
    probes: dict[str, Any] = {}
    if database is not None:
        collectors["database"] = DatabaseMetricsCollector(database)
        collectors["business"] = BusinessMetricsCollector(database)
        probes["database"] = DatabaseCheck(database)
    probes["cache"] = CacheCheck(manager_cache)
    probes["storage"] = StorageCheck(storage_path)
    probes["memory"] = MemoryCheck(settings.memory_limit_bytes)
    probes["application"] = ApplicationCheck(settings.required_modules, manager_cache)

    events = InMemoryEventDispatcher()
    manager = MonitoringManager(
        collectors,
        cache=manager_cache,
        events=events,
        alert_dispatcher=build_alert_dispatcher(settings),
        health_probes=probes,
        rule_storage=CacheRuleStorage(durable),
        metrics_ttl=settings.metrics_ttl,
        custom_metric_ttl=settings.custom_metric_ttl,
        alerts_ttl=settings.alerts_ttl,
        histogram_size=settings.histogram_size,
        max_workers=settings.max_workers,
        collector_timeout=settings.collector_timeout,
        probe_timeout=settings.probe_timeout,
        prefix=settings.export_prefix,
    )
    return Monitor(
        manager=manager,
        settings=settings,
        local_cache=local,
        durable_cache=durable,
        shared_cache=shared,
        database=database,
        events=events,
    )


def configure_log_capture(
    settings: MonitoringSettings, logger_name: str = "storepulse"
) -> LogStoragePort:
    """Attach a LogStorageHandler to the package logger and return its storage.

    Uses SQLite when ``log_db`` is set, otherwise a ring buffer.
    """
    log_db = settings.resolve(settings.log_db)
    storage: LogStoragePort
    if log_db is not None:
        log_db.parent.mkdir(parents=True, exist_ok=True)
        storage = SQLiteLogStorage(str(log_db))
    else:
        storage = RingBufferLogStorage(settings.log_buffer_size)
    target = logging.getLogger(logger_name)
    target.addHandler(LogStorageHandler(storage, level=logging.INFO))
    if target.level == logging.NOTSET:
        target.setLevel(logging.INFO)
    return storage
