"""Per-request HTTP metrics and request screening."""

import re
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote_plus, urlsplit

import psutil

from storepulse.adapters.cache.in_memory import InMemoryCache
from storepulse.adapters.collectors.base import (
    LOG_TIMESTAMP,
    LOG_TIMESTAMP_FORMAT,
    guard,
    recent_log_lines,
    resolve_client_ip,
)
from storepulse.core.context import get_current_request
from storepulse.core.models import RequestContext
from storepulse.core.ports import DatabasePort

_SQL_INJECTION = re.compile(r"(\bunion\b|\bselect\b|\binsert\b|\bdelete\b|\bdrop\b)", re.I)
_XSS = re.compile(r"<script|javascript:|onload=|onerror=", re.I)
_PATH_TRAVERSAL = re.compile(r"\.\.[/\\]")
_BOT_AGENT = re.compile(r"bot|crawler|spider|scanner", re.I)
_KNOWN_BOTS = re.compile(r"googlebot|bingbot|facebookexternalhit", re.I)

_REDACTED_HEADERS = frozenset({"authorization", "cookie", "x-api-key", "proxy-authorization"})
_COMPRESSIONS = ("gzip", "deflate", "br")

MAX_RECENT_ERRORS = 10


def detect_suspicious_patterns(request: RequestContext) -> list[str]:
    """Return the names of attack signatures found in the request."""
    target = unquote_plus(request.uri)
    found = []
    if _SQL_INJECTION.search(target):
        found.append("sql_injection_attempt")
    if _XSS.search(target):
        found.append("xss_attempt")
    if _PATH_TRAVERSAL.search(target):
        found.append("path_traversal_attempt")
    agent = request.header("user-agent")
    if _BOT_AGENT.search(agent) and not _KNOWN_BOTS.search(agent):
        found.append("suspicious_user_agent")
    return found


class HttpMetricsCollector:
    """Collects metrics about the request currently being served.

    Database and cache counters are delegated to the adapters that own them.

    Args:
        request_provider: Returns the current request, if any.
        database: Source of per-request query counters.
        cache: Source of cache hit/miss/set/delete counters.
        error_log: Log file scanned for recent errors.
    """

    def __init__(
        self,
        request_provider: Callable[[], RequestContext | None] = get_current_request,
        database: DatabasePort | None = None,
        cache: InMemoryCache | None = None,
        error_log: Path | None = None,
    ) -> None:
        self._request_provider = request_provider
        self._database = database
        self._cache = cache
        self._error_log = error_log

    def collect(self) -> dict[str, Any]:
        request = self._request_provider()
        if request is None:
            return {
                "request": {"available": False},
                "errors": guard({"count": 0, "recent": []}, self._errors),
            }
        return {
            "request": guard({"available": True}, lambda: self._request(request)),
            "response": guard({}, lambda: self._response(request)),
            "performance": guard({}, lambda: self._performance(request)),
            "security": guard(
                {"suspicious_patterns": []}, lambda: self._security(request)
            ),
            "errors": guard({"count": 0, "recent": []}, self._errors),
        }

    @staticmethod
    def _request(request: RequestContext) -> dict[str, Any]:
        parts = urlsplit(request.uri)
        headers = {
            name: ("[redacted]" if name in _REDACTED_HEADERS else value)
            for name, value in request.headers.items()
        }
        content_length = request.header("content-length")
        return {
            "method": request.method,
            "uri": request.uri,
            "path": parts.path,
            "query_string": parts.query,
            "query": {key: values[-1] for key, values in parse_qs(parts.query).items()},
            "scheme": request.scheme,
            "protocol": request.protocol,
            "host": request.host or request.header("host"),
            "user_agent": request.header("user-agent"),
            "referer": request.header("referer"),
            "content_type": request.header("content-type"),
            "content_length": int(content_length) if content_length.isdigit() else 0,
            "remote_addr": request.remote_addr,
            "client_ip": resolve_client_ip(request),
            "headers": headers,
            "body_size": request.body_size,
        }

    @staticmethod
    def _response(request: RequestContext) -> dict[str, Any]:
        headers = request.response_headers
        encoding = headers.get("content-encoding", "").lower()
        length = headers.get("content-length", "")
        return {
            "status_code": request.status_code,
            "content_type": headers.get("content-type", ""),
            "content_length": int(length) if length.isdigit() else 0,
            "compression": encoding if encoding in _COMPRESSIONS else None,
            "response_time": round((time.time() - request.started_at) * 1000, 2),
        }

    def _performance(self, request: RequestContext) -> dict[str, Any]:
        data: dict[str, Any] = {
            "execution_time": round((time.time() - request.started_at) * 1000, 2),
            "memory_usage": psutil.Process().memory_info().rss,
        }
        if self._database is not None:
            data["database"] = self._database.counters()
        else:
            data["database"] = {"queries": 0, "query_time": 0.0, "slow_queries": 0}
        if self._cache is not None:
            stats = self._cache.stats()
            data["cache"] = {
                key: stats[key] for key in ("hits", "misses", "sets", "deletes")
            }
        else:
            data["cache"] = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}
        return data

    @staticmethod
    def _security(request: RequestContext) -> dict[str, Any]:
        return {
            "https": request.is_https,
            "csrf_token": request.csrf_token,
            "authentication": bool(
                request.header("authorization") or request.header("x-api-key")
            ),
            "suspicious_patterns": detect_suspicious_patterns(request),
        }

    def _errors(self) -> dict[str, Any]:
        lines = recent_log_lines(
            self._error_log,
            LOG_TIMESTAMP,
            LOG_TIMESTAMP_FORMAT,
            limit=MAX_RECENT_ERRORS,
        )
        return {
            "count": len(lines),
            "recent": [{"timestamp": stamp, "message": line} for stamp, line in lines],
        }
