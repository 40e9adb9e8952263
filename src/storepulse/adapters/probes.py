"""Health probes for the platform's dependencies."""

import importlib.util
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import psutil

from storepulse.core.errors import HealthCheckError
from storepulse.core.health import (
    CACHE_WARNING_MS,
    classify_latency,
    classify_usage,
)
from storepulse.core.models import CheckResult, Status
from storepulse.core.ports import CachePort, DatabasePort
from storepulse.core.units import format_bytes


class DatabaseCheck:
    """Round-trips ``SELECT 1`` and classifies the latency."""

    def __init__(self, database: DatabasePort) -> None:
        self._database = database

    def check(self) -> CheckResult:
        start = time.perf_counter()
        try:
            self._database.ping()
        except Exception as exc:
            return CheckResult(
                Status.CRITICAL,
                f"Database connection failed: {exc}",
                {"error": str(exc)},
            )
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        status = classify_latency(latency_ms)
        message = {
            Status.HEALTHY: "Database connection is healthy",
            Status.WARNING: "Database is responding slowly",
            Status.CRITICAL: "Database response time is critical",
        }[status]
        return CheckResult(status, message, {"response_time": latency_ms})


class CacheCheck:
    """Writes, reads back and deletes a throwaway key."""

    def __init__(self, cache: CachePort, warning_ms: float = CACHE_WARNING_MS) -> None:
        self._cache = cache
        self._warning_ms = warning_ms

    def check(self) -> CheckResult:
        key = f"health_check_{time.time_ns()}"
        start = time.perf_counter()
        try:
            self._cache.put(key, "ok", 60)
            value = self._cache.get(key)
            self._cache.forget(key)
        except Exception as exc:
            return CheckResult(
                Status.CRITICAL, f"Cache check failed: {exc}", {"error": str(exc)}
            )
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        if value != "ok":
            return CheckResult(
                Status.CRITICAL,
                "Cache returned an unexpected value",
                {"response_time": latency_ms},
            )
        if latency_ms > self._warning_ms:
            return CheckResult(
                Status.WARNING, "Cache is responding slowly", {"response_time": latency_ms}
            )
        return CheckResult(
            Status.HEALTHY, "Cache is working properly", {"response_time": latency_ms}
        )


class StorageCheck:
    """Checks that the storage directory is writable and the disk has room.

    Args:
        path: Storage directory.
        disk_usage: Callable returning an object with ``total``, ``used``
            and ``free`` attributes; defaults to psutil.disk_usage.
    """

    def __init__(
        self,
        path: Path | str,
        disk_usage: Callable[[str], Any] = psutil.disk_usage,
    ) -> None:
        self._path = Path(path)
        self._disk_usage = disk_usage

    def check(self) -> CheckResult:
        if not self._path.is_dir() or not os.access(self._path, os.W_OK):
            return CheckResult(
                Status.CRITICAL,
                f"Storage directory is not writable: {self._path}",
                {"path": str(self._path)},
            )
        try:
            usage = self._disk_usage(str(self._path))
        except OSError as exc:
            raise HealthCheckError(f"Cannot read disk usage of {self._path}") from exc
        percent = round(usage.used / usage.total * 100, 2) if usage.total else 0.0
        status = classify_usage(percent)
        message = {
            Status.HEALTHY: "Storage is healthy",
            Status.WARNING: "Disk usage is high",
            Status.CRITICAL: "Disk space is critically low",
        }[status]
        return CheckResult(
            status,
            message,
            {"disk_usage": percent, "free_space": format_bytes(usage.free)},
        )


class MemoryCheck:
    """Compares the process resident set size with the memory limit.

    Without a limit the total system memory is used.
    """

    def __init__(
        self,
        limit_bytes: int | None,
        rss: Callable[[], int] | None = None,
    ) -> None:
        self._limit = limit_bytes
        self._rss = rss or (lambda: psutil.Process().memory_info().rss)

    def check(self) -> CheckResult:
        current = self._rss()
        limit = self._limit or psutil.virtual_memory().total
        percent = round(current / limit * 100, 2) if limit else 0.0
        status = classify_usage(percent)
        message = {
            Status.HEALTHY: "Memory usage is normal",
            Status.WARNING: "Memory usage is high",
            Status.CRITICAL: "Memory usage is critical",
        }[status]
        return CheckResult(
            status,
            message,
            {
                "usage_percent": percent,
                "current_usage": format_bytes(current),
                "memory_limit": format_bytes(limit),
            },
        )


class ApplicationCheck:
    """Checks that required modules are importable and the cache answers."""

    def __init__(self, required_modules: list[str], cache: CachePort | None = None) -> None:
        self._required_modules = required_modules
        self._cache = cache

    def check(self) -> CheckResult:
        errors = []
        for module in self._required_modules:
            try:
                found = importlib.util.find_spec(module) is not None
            except (ImportError, ValueError):
                found = False
            if not found:
                errors.append(f"Module {module} is not available")
        if self._cache is not None:
            try:
                self._cache.get("health_check_application")
            except Exception as exc:
                errors.append(f"Cache is not available: {exc}")
        if errors:
            return CheckResult(
                Status.WARNING, "Application has issues", {"errors": errors}
            )
        return CheckResult(Status.HEALTHY, "Application is healthy")
