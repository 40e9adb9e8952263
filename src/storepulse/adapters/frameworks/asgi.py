"""ASGI adapter for the monitoring endpoints.

Provides a framework-agnostic ASGI application that can be served by any
ASGI server (uvicorn, hypercorn, daphne), and a middleware that exposes the
storefront's requests to the HTTP collector.
"""

import asyncio
import fnmatch
import json
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import replace
from typing import Any

from storepulse.adapters.frameworks.query_params import (
    _parse_level_param,
    _parse_query_params,
    _parse_since_param,
)
from storepulse.core.context import reset_current_request, set_current_request
from storepulse.core.encoding.ndjson import encode_logs
from storepulse.core.encoding.prometheus import CONTENT_TYPE as EXPOSITION_CONTENT_TYPE
from storepulse.core.manager import MonitoringManager
from storepulse.core.models import RequestContext, Status
from storepulse.core.ports import LogStoragePort

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

Endpoint = Callable[[], Coroutine[Any, Any, tuple[int, str]]]

_ROUTES = {
    "/metrics": "GET",
    "/health": "GET",
    "/collect": "POST",
    "/logs": "GET",
}


def _decode_headers(raw: list[tuple[bytes, bytes]]) -> dict[str, str]:
    return {
        name.decode("latin-1").lower(): value.decode("latin-1") for name, value in raw
    }


def request_context_from_scope(scope: Scope) -> RequestContext:
    """Build a RequestContext from an ASGI HTTP scope."""
    headers = _decode_headers(scope.get("headers", []))
    path = scope.get("path", "/")
    query = scope.get("query_string", b"").decode("latin-1")
    client = scope.get("client") or ("", 0)
    body_size = headers.get("content-length", "")
    return RequestContext(
        method=scope.get("method", "GET"),
        uri=f"{path}?{query}" if query else path,
        scheme=scope.get("scheme", "http"),
        protocol=f"HTTP/{scope.get('http_version', '1.1')}",
        host=headers.get("host", ""),
        headers=headers,
        remote_addr=client[0] or "",
        body_size=int(body_size) if body_size.isdigit() else 0,
        started_at=time.time(),
    )


async def _send_response(send: Send, status: int, content_type: str, body: str) -> None:
    """Send an HTTP response with headers and body."""
    headers = [(b"content-type", content_type.encode())]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _handle_endpoint(
    send: Send,
    endpoint_func: Endpoint,
    content_type: str,
    log_message: str,
) -> None:
    """Execute an endpoint function with error handling and send response.

    Args:
        send: ASGI send callable for writing response.
        endpoint_func: Async function returning status code and body.
        content_type: Content-Type header for the endpoint's response.
        log_message: Message to log on error.
    """
    try:
        status, body = await endpoint_func()
    except Exception:
        logger.exception(log_message)
        error_body = json.dumps({"error": "Internal Server Error"})
        await _send_response(send, 500, "application/json", error_body)
        return
    await _send_response(send, status, content_type, body)


def create_asgi_app(
    manager: MonitoringManager,
    log_storage: LogStoragePort | None = None,
) -> ASGIApp:
    """Create an ASGI app with /metrics, /health, /collect and /logs endpoints.

    Args:
        manager: Monitoring manager backing the endpoints.
        log_storage: Captured logs served at /logs; without it /logs is 404.

    Returns:
        ASGI application callable.
    """

    async def metrics() -> tuple[int, str]:
        return 200, manager.export_prometheus_metrics()

    async def health() -> tuple[int, str]:
        status = await manager.check_health()
        code = 503 if status.overall is Status.CRITICAL else 200
        return code, json.dumps(status.to_dict())

    async def collect() -> tuple[int, str]:
        started = time.perf_counter()
        snapshot = await manager.collect_metrics()
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        return 200, json.dumps(
            {"metrics": snapshot, "collection_time_ms": elapsed_ms}, default=str
        )

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"]
        method = _ROUTES.get(path)
        if method is None or (path == "/logs" and log_storage is None):
            await _send_response(send, 404, "text/plain", "Not Found")
            return
        if scope.get("method", "GET") != method:
            await _send_response(send, 405, "text/plain", "Method Not Allowed")
            return

        if path == "/metrics":
            await _handle_endpoint(
                send, metrics, EXPOSITION_CONTENT_TYPE, "Error encoding metrics endpoint"
            )
        elif path == "/health":
            await _handle_endpoint(
                send, health, "application/json", "Error running health checks"
            )
        elif path == "/collect":
            await _handle_endpoint(
                send, collect, "application/json", "Error collecting metrics"
            )
        elif path == "/logs":
            params = _parse_query_params(scope.get("query_string", b""))
            since = _parse_since_param(params)
            level = _parse_level_param(params)

            async def logs() -> tuple[int, str]:
                return 200, await encode_logs(log_storage.read(since=since, level=level))

            await _handle_endpoint(
                send, logs, "application/x-ndjson", "Error encoding logs endpoint"
            )

    return app


class ASGIMonitoringMiddleware:
    """ASGI middleware that exposes each request to the collectors.

    Binds a RequestContext for the duration of the request, so the HTTP and
    application collectors can describe it, and records request count and
    duration on the manager as ``counters.http.requests`` and
    ``timings.http.request``. Once the response starts, the bound context
    also carries its status and headers. Recording runs in a worker thread.
    """

    def __init__(
        self,
        app: ASGIApp,
        manager: MonitoringManager,
        exclude_paths: list[str] | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            manager: Manager receiving request metrics.
            exclude_paths: Paths not recorded. Supports exact matches and
                wildcard patterns (e.g., "/internal/*").
        """
        self.app = app
        self.manager = manager
        self.exclude_paths = exclude_paths or []

    def _path_excluded(self, path: str) -> bool:
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._path_excluded(scope["path"]):
            await self.app(scope, receive, send)
            return

        request = request_context_from_scope(scope)
        start = time.perf_counter()
        status: dict[str, int] = {"code": 500}

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
                set_current_request(
                    replace(
                        request,
                        status_code=message["status"],
                        response_headers=_decode_headers(message.get("headers", [])),
                    )
                )
            await send(message)

        token = set_current_request(request)
        try:
            await self.app(scope, receive, wrapped_send)
        finally:
            reset_current_request(token)
            duration_ms = (time.perf_counter() - start) * 1000
            tags = {"method": request.method, "status": str(status["code"])}
            # Cache writes and alert delivery block.
            await asyncio.to_thread(self._record, duration_ms, tags)

    def _record(self, duration_ms: float, tags: dict[str, str]) -> None:
        self.manager.increment("http.requests", tags=tags)
        self.manager.timing("http.request", duration_ms, tags)
