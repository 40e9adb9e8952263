"""Tests for ApplicationMetricsCollector."""

import json
import time
from pathlib import Path

import pytest

from storepulse.adapters.collectors.application import ApplicationMetricsCollector
from storepulse.config import MonitoringSettings
from storepulse.core.models import RequestContext

pytestmark = [pytest.mark.tier(1), pytest.mark.collectors]


@pytest.fixture
def platform_root(tmp_path: Path) -> Path:
    (tmp_path / "VERSION").write_text("3.4.1\n")
    for name, version in [("reviews", "1.2.0"), ("wishlist", "0.9.0")]:
        plugin = tmp_path / "plugins" / name
        plugin.mkdir(parents=True)
        (plugin / "plugin.json").write_text(json.dumps({"name": name, "version": version}))
    (tmp_path / "plugins" / "broken").mkdir()
    (tmp_path / "plugins" / "broken" / "plugin.json").write_text("{not json")
    state = tmp_path / "storage" / "plugins"
    state.mkdir(parents=True)
    (state / "plugins.json").write_text(json.dumps({"active": ["reviews"]}))
    sessions = tmp_path / "sessions"
    sessions.mkdir()
    (sessions / "sess_a").write_text("x" * 10)
    (sessions / "sess_b").write_text("y" * 5)
    (sessions / "other").write_text("ignored")
    return tmp_path


@pytest.fixture
def settings(platform_root: Path) -> MonitoringSettings:
    return MonitoringSettings(
        root_path=platform_root,
        sessions_path=Path("sessions"),
        error_log=Path("error.log"),
        memory_limit="256M",
        upload_max_size="2M",
    )


class TestApplicationMetricsCollector:
    """Tests for the application runtime bundle."""

    def test_sections(self, settings: MonitoringSettings) -> None:
        bundle = ApplicationMetricsCollector(settings, lambda: None).collect()

        assert set(bundle) == {
            "runtime",
            "limits",
            "framework",
            "plugins",
            "sessions",
            "errors",
            "performance",
        }
        assert not any("error" in section for section in bundle.values())

    def test_framework_version_and_request(self, settings: MonitoringSettings) -> None:
        request = RequestContext(
            method="GET",
            uri="/cart",
            scheme="https",
            headers={"user-agent": "Mozilla/5.0"},
            remote_addr="8.8.8.8",
        )

        framework = ApplicationMetricsCollector(settings, lambda: request).collect()[
            "framework"
        ]

        assert framework["version"] == "3.4.1"
        assert framework["environment"] == "production"
        assert framework["request"] == {
            "method": "GET",
            "uri": "/cart",
            "user_agent": "Mozilla/5.0",
            "ip": "8.8.8.8",
            "https": True,
        }

    def test_missing_version_file(self, tmp_path: Path) -> None:
        settings = MonitoringSettings(root_path=tmp_path)

        framework = ApplicationMetricsCollector(settings, lambda: None).collect()[
            "framework"
        ]

        assert framework["version"] == "unknown"
        assert framework["request"] is None

    def test_plugins(self, settings: MonitoringSettings) -> None:
        plugins = ApplicationMetricsCollector(settings, lambda: None).collect()["plugins"]

        assert plugins["total_installed"] == 3
        assert plugins["total_active"] == 1
        by_name = {p["name"]: p for p in plugins["plugins"]}
        assert by_name["reviews"] == {"name": "reviews", "version": "1.2.0", "active": True}
        assert by_name["broken"]["version"] == "unknown"

    def test_limits(self, settings: MonitoringSettings) -> None:
        limits = ApplicationMetricsCollector(settings, lambda: None).collect()["limits"]

        assert limits["memory_limit"] == 256 * 1024**2
        assert limits["file_uploads"]["max_size"] == 2 * 1024**2
        assert limits["open_files"]["soft"] > 0

    def test_sessions_count_only_session_files(self, settings: MonitoringSettings) -> None:
        sessions = ApplicationMetricsCollector(settings, lambda: None).collect()["sessions"]

        assert sessions["file_count"] == 2
        assert sessions["total_size"] == 15

    def test_recent_errors(self, settings: MonitoringSettings, platform_root: Path) -> None:
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
        (platform_root / "error.log").write_text(
            f"{stamp} ERROR payment gateway timeout\n"
            "2001-01-01 00:00:00 ERROR ancient failure\n"
        )

        errors = ApplicationMetricsCollector(settings, lambda: None).collect()["errors"]

        assert errors["recent_errors"] == 1
        assert errors["log_size"] > 0

    def test_performance(self, settings: MonitoringSettings) -> None:
        performance = ApplicationMetricsCollector(settings, lambda: None).collect()[
            "performance"
        ]

        assert performance["memory_usage"] > 0
        assert performance["threads"] >= 1
