"""Shared test fixtures for all test modules."""

from pathlib import Path

import httpx
import pytest

from storepulse.adapters.cache.in_memory import InMemoryCache
from storepulse.adapters.events import InMemoryEventDispatcher
from storepulse.core.alerts import AlertDispatcher
from storepulse.core.manager import MonitoringManager
from tests.doubles import FakeDatabase, RecordingChannel


@pytest.fixture
def fake_database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def events() -> InMemoryEventDispatcher:
    return InMemoryEventDispatcher()


@pytest.fixture
def recording_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def manager(
    cache: InMemoryCache,
    events: InMemoryEventDispatcher,
    recording_channel: RecordingChannel,
) -> MonitoringManager:
    """Manager without collectors, delivering alerts to a recording channel."""
    return MonitoringManager(
        cache=cache,
        events=events,
        alert_dispatcher=AlertDispatcher({"log": recording_channel}),
    )


@pytest.fixture
def cache_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for cache tests."""
    return str(tmp_path / "cache.db")


@pytest.fixture
def log_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for log storage tests."""
    return str(tmp_path / "logs.db")


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(manager)
            async with asgi_test_client(app) as client:
                response = await client.get("/metrics")
    """

    def _get_client(app):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


@pytest.fixture
def basic_asgi_app():
    """ASGI app that returns 200 OK."""
    from storepulse.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app
