"""Application runtime metrics: interpreter, limits, plugins, sessions and errors."""

import gc
import importlib.metadata
import json
import platform
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import psutil

from storepulse.adapters.collectors.base import (
    LOG_TIMESTAMP,
    LOG_TIMESTAMP_FORMAT,
    directory_stats,
    guard,
    recent_log_lines,
    resolve_client_ip,
)
from storepulse.config import MonitoringSettings
from storepulse.core.context import get_current_request
from storepulse.core.models import RequestContext
from storepulse.core.units import parse_bytes


class ApplicationMetricsCollector:
    """Collects metrics about the running storefront application.

    Args:
        settings: Paths and limits of the platform.
        request_provider: Returns the request being served, if any.
    """

    def __init__(
        self,
        settings: MonitoringSettings,
        request_provider: Callable[[], RequestContext | None] = get_current_request,
    ) -> None:
        self._settings = settings
        self._request_provider = request_provider

    def collect(self) -> dict[str, Any]:
        return {
            "runtime": guard({"version": platform.python_version()}, self._runtime),
            "limits": guard({}, self._limits),
            "framework": guard({"version": "unknown"}, self._framework),
            "plugins": guard(
                {"total_installed": 0, "total_active": 0, "plugins": []},
                self._plugins,
            ),
            "sessions": guard({"file_count": 0, "total_size": 0}, self._sessions),
            "errors": guard({"log_size": 0, "recent_errors": 0}, self._errors),
            "performance": guard({}, self._performance),
        }

    @staticmethod
    def _runtime() -> dict[str, Any]:
        return {
            "version": platform.python_version(),
            "implementation": platform.python_implementation(),
            "executable": sys.executable,
            "modules_loaded": len(sys.modules),
            "distributions": sum(1 for _ in importlib.metadata.distributions()),
        }

    def _limits(self) -> dict[str, Any]:
        import resource

        settings = self._settings
        soft_files, hard_files = resource.getrlimit(resource.RLIMIT_NOFILE)
        soft_as, _ = resource.getrlimit(resource.RLIMIT_AS)
        return {
            "memory_limit": settings.memory_limit_bytes or -1,
            "max_execution_time": settings.max_execution_time,
            "file_uploads": {
                "max_size": parse_bytes(settings.upload_max_size) or -1,
                "post_max_size": parse_bytes(settings.post_max_size) or -1,
                "max_files": settings.max_file_uploads,
            },
            "open_files": {"soft": soft_files, "hard": hard_files},
            "address_space": soft_as,
        }

    def _framework(self) -> dict[str, Any]:
        settings = self._settings
        version_file = settings.resolve(settings.version_file)
        version = "unknown"
        if version_file is not None and version_file.is_file():
            version = version_file.read_text(encoding="utf-8").strip() or "unknown"
        data: dict[str, Any] = {
            "version": version,
            "environment": settings.environment,
            "debug": settings.debug,
            "timezone": settings.timezone,
            "locale": settings.locale,
            "request": None,
        }
        request = self._request_provider()
        if request is not None:
            data["request"] = {
                "method": request.method,
                "uri": request.uri,
                "user_agent": request.header("user-agent"),
                "ip": resolve_client_ip(request),
                "https": request.is_https,
            }
        return data

    def _plugins(self) -> dict[str, Any]:
        settings = self._settings
        plugins_dir = settings.resolve(settings.plugins_path)
        active = set(self._active_plugins())
        plugins = []
        if plugins_dir is not None and plugins_dir.is_dir():
            for manifest_path in sorted(plugins_dir.glob("*/plugin.json")):
                manifest = _read_json(manifest_path)
                name = manifest.get("name") or manifest_path.parent.name
                plugins.append(
                    {
                        "name": name,
                        "version": manifest.get("version", "unknown"),
                        "active": name in active,
                    }
                )
        return {
            "total_installed": len(plugins),
            "total_active": sum(1 for p in plugins if p["active"]),
            "plugins": plugins,
        }

    def _active_plugins(self) -> list[str]:
        settings = self._settings
        storage = settings.resolve(settings.storage_path)
        if storage is None:
            return []
        state = _read_json(storage / "plugins" / "plugins.json")
        active = state.get("active", [])
        return [str(name) for name in active] if isinstance(active, list) else []

    def _sessions(self) -> dict[str, Any]:
        path = self._settings.resolve(self._settings.sessions_path)
        return {
            "path": str(path) if path is not None else None,
            **directory_stats(path, "sess_*"),
        }

    def _errors(self) -> dict[str, Any]:
        settings = self._settings
        error_log = settings.resolve(settings.error_log)
        log_size = error_log.stat().st_size if error_log and error_log.is_file() else 0
        recent = recent_log_lines(error_log, LOG_TIMESTAMP, LOG_TIMESTAMP_FORMAT)
        return {
            "log_size": log_size,
            "recent_errors": len(recent),
            "app_logs": directory_stats(settings.resolve(settings.app_log_path), "*.log"),
        }

    @staticmethod
    def _performance() -> dict[str, Any]:
        process = psutil.Process()
        return {
            "execution_time": round(time.time() - process.create_time(), 2),
            "memory_usage": process.memory_info().rss,
            "threads": threading.active_count(),
            "gc_counts": list(gc.get_count()),
        }


def _read_json(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}
