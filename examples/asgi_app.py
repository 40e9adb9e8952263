"""Example storefront ASGI application with monitoring endpoints.

Run with:
    uvicorn examples.asgi_app:app --reload

Endpoints:
    /                     - A tiny storefront page, counted by the middleware
    /metrics              - Prometheus text format (collectors + custom metrics)
    /health               - JSON health report, 503 when critical
    /collect (POST)       - Run every collector and return the snapshot
    /logs                 - NDJSON of captured log records
    /logs?since=<ts>      - NDJSON logs since timestamp
    /logs?level=<level>   - NDJSON logs filtered by level (INFO, ERROR, etc.)

Configuration comes from STOREPULSE_* environment variables, e.g.
STOREPULSE_ROOT_PATH=/srv/shop or STOREPULSE_DATABASE_DSN=sqlite:///shop.db.
"""

import json
import logging

from storepulse.adapters.frameworks.asgi import (
    ASGIMonitoringMiddleware,
    Receive,
    Scope,
    Send,
    create_asgi_app,
)
from storepulse.bootstrap import build_monitor, configure_log_capture
from storepulse.config import MonitoringSettings

settings = MonitoringSettings()
monitor = build_monitor(settings)
log_storage = configure_log_capture(settings)

logger = logging.getLogger("storepulse.example")

MONITORING_PATHS = ["/metrics", "/health", "/collect", "/logs"]
monitoring_app = create_asgi_app(monitor.manager, log_storage)


async def storefront(scope: Scope, receive: Receive, send: Send) -> None:
    """Route monitoring paths to the monitoring app, everything else here."""
    if scope["type"] != "http" or scope["path"] in MONITORING_PATHS:
        await monitoring_app(scope, receive, send)
        return

    with monitor.manager.start_timer("storefront.render"):
        monitor.manager.increment("storefront.page_views", tags={"path": scope["path"]})
        logger.info("Rendered %s", scope["path"])
        body = json.dumps({"message": "Welcome! Check /metrics and /health."})

    await send(
        {
            "type": "http.response.start",
            "status": 200,
            "headers": [(b"content-type", b"application/json")],
        }
    )
    await send({"type": "http.response.body", "body": body.encode()})


app = ASGIMonitoringMiddleware(
    storefront,
    monitor.manager,
    exclude_paths=MONITORING_PATHS,
)
