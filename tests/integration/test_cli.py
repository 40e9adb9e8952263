"""Integration tests for the storepulse command line."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from storepulse.adapters.cache import InMemoryCache, SQLiteCache
from storepulse.adapters.storage import CacheRuleStorage
from storepulse.bootstrap import Monitor
from storepulse.cli import main
from storepulse.config import MonitoringSettings
from storepulse.core.alerts import DEFAULT_RULES, AlertDispatcher
from storepulse.core.manager import MonitoringManager
from storepulse.core.models import Status
from tests.doubles import RecordingChannel, StaticCollector, StaticProbe

pytestmark = [pytest.mark.tier(2), pytest.mark.cli]


@pytest.fixture
def settings(tmp_path: Path) -> MonitoringSettings:
    return MonitoringSettings(
        root_path=tmp_path,
        cache_db=Path("cache/monitoring.db"),
        benchmark_iterations=1,
        memory_limit="-1",
    )


def _monitor(
    settings: MonitoringSettings, probes: dict | None = None, **manager_kwargs
) -> Monitor:
    durable = SQLiteCache(str(settings.root_path / "monitor.db"))
    manager = MonitoringManager(
        {"system": StaticCollector({"cpu": {"cores": 4}, "uptime": {"seconds": 60}})},
        cache=durable,
        health_probes=probes,
        rule_storage=CacheRuleStorage(durable),
        **manager_kwargs,
    )
    return Monitor(
        manager=manager,
        settings=settings,
        local_cache=InMemoryCache(),
        durable_cache=durable,
    )


def _invoke(args: list[str], settings: MonitoringSettings, monitor: Monitor | None = None):
    return CliRunner().invoke(
        main, args, obj={"settings": settings, "monitor": monitor}
    )


class TestHealthCommand:
    """Tests for the exit codes of ``storepulse health``."""

    @pytest.mark.tra("CLI.Health.ExitCode")
    @pytest.mark.parametrize(
        ("status", "exit_code"),
        [(Status.HEALTHY, 0), (Status.WARNING, 1), (Status.CRITICAL, 2)],
    )
    def test_exit_code_follows_overall_status(
        self, settings: MonitoringSettings, status: Status, exit_code: int
    ) -> None:
        monitor = _monitor(
            settings,
            {"cache": StaticProbe(Status.HEALTHY), "storage": StaticProbe(status)},
        )

        result = _invoke(["health"], settings, monitor)

        assert result.exit_code == exit_code
        assert f"Overall: {status.value}" in result.stdout

    @pytest.mark.tra("CLI.Health.Json")
    def test_json_report(self, settings: MonitoringSettings) -> None:
        monitor = _monitor(
            settings, {"memory": StaticProbe(Status.HEALTHY, "ok", usage_percent=12.5)}
        )

        result = _invoke(["health", "--json"], settings, monitor)

        report = json.loads(result.stdout)
        assert result.exit_code == 0
        assert report["checks"]["memory"] == {
            "status": "healthy",
            "message": "ok",
            "usage_percent": 12.5,
        }


class TestCollectAndExport:
    @pytest.mark.tra("CLI.Collect")
    def test_collect_prints_and_writes_snapshot(
        self, settings: MonitoringSettings, tmp_path: Path
    ) -> None:
        output = tmp_path / "reports" / "snapshot.json"

        result = _invoke(
            ["collect", "--output", str(output)], settings, _monitor(settings)
        )

        report = json.loads(result.stdout)
        assert result.exit_code == 0
        assert report["metrics"]["system"]["cpu"]["cores"] == 4
        assert json.loads(output.read_text())["metrics"] == report["metrics"]

    @pytest.mark.tra("CLI.Export.Prometheus")
    def test_export_prometheus(self, settings: MonitoringSettings) -> None:
        monitor = _monitor(settings)
        monitor.manager.record_metric("orders.placed", 12)

        result = _invoke(["export"], settings, monitor)

        assert result.exit_code == 0
        assert "storepulse_system_cpu_cores 4" in result.stdout
        assert "storepulse_orders_placed 12" in result.stdout

    @pytest.mark.tra("CLI.Export.Json")
    def test_export_json(self, settings: MonitoringSettings) -> None:
        result = _invoke(["export", "--format", "json"], settings, _monitor(settings))

        assert json.loads(result.stdout)["system"]["uptime"] == {"seconds": 60}

    @pytest.mark.tra("CLI.Export.Csv")
    def test_export_csv(self, settings: MonitoringSettings) -> None:
        result = _invoke(["export", "--format", "csv"], settings, _monitor(settings))

        lines = result.stdout.splitlines()
        assert lines[0] == "metric,value"
        assert "system.cpu.cores,4" in lines

    @pytest.mark.tra("CLI.Export.Format")
    def test_unknown_format_is_rejected(self, settings: MonitoringSettings) -> None:
        result = _invoke(["export", "--format", "xml"], settings, _monitor(settings))

        assert result.exit_code == 2


class TestCleanCommand:
    @pytest.mark.tra("CLI.Clean")
    def test_purges_expired_entries(self, settings: MonitoringSettings) -> None:
        monitor = _monitor(settings)
        monitor.durable_cache.put("stale", 1, ttl=-1)
        monitor.durable_cache.put("fresh", 2, ttl=600)

        result = _invoke(["clean"], settings, monitor)

        assert result.exit_code == 0
        assert "Removed 1 expired cache entries" in result.stdout
        assert monitor.durable_cache.get("fresh") == 2


class TestAlertCommands:
    """Tests for ``storepulse alerts``, using the monitor built from settings."""

    @pytest.mark.tra("CLI.Alerts.Add")
    def test_added_rule_survives_between_invocations(
        self, settings: MonitoringSettings
    ) -> None:
        added = _invoke(
            [
                "alerts",
                "add",
                "--name",
                "Order spike",
                "--pattern",
                "orders.*",
                "--threshold",
                "100",
                "--channel",
                "log",
                "--channel",
                "slack",
            ],
            settings,
        )
        listed = _invoke(["alerts", "list"], settings)

        assert added.exit_code == 0
        rules = json.loads(listed.stdout)
        assert rules == [
            {
                "name": "Order spike",
                "metric_pattern": "orders.*",
                "threshold": 100,
                "operator": ">",
                "severity": "warning",
                "channels": ["log", "slack"],
            }
        ]

    @pytest.mark.tra("CLI.Alerts.Add")
    def test_add_replaces_rule_with_same_name(self, settings: MonitoringSettings) -> None:
        _invoke(["alerts", "add", "--name", "Disk", "--threshold", "80"], settings)
        _invoke(["alerts", "add", "--name", "Disk", "--threshold", "95.5"], settings)

        rules = json.loads(_invoke(["alerts", "list"], settings).stdout)

        assert [(r["name"], r["threshold"]) for r in rules] == [("Disk", 95.5)]

    @pytest.mark.tra("CLI.Alerts.Add.Invalid")
    def test_invalid_operator_is_rejected(self, settings: MonitoringSettings) -> None:
        result = _invoke(
            ["alerts", "add", "--name", "Bad", "--operator", "~="], settings
        )

        assert result.exit_code == 2

    @pytest.mark.tra("CLI.Alerts.Remove")
    def test_remove(self, settings: MonitoringSettings) -> None:
        _invoke(["alerts", "defaults"], settings)
        name = DEFAULT_RULES[0].name

        removed = _invoke(["alerts", "remove", name], settings)
        rules = json.loads(_invoke(["alerts", "list"], settings).stdout)

        assert removed.exit_code == 0
        assert name not in [rule["name"] for rule in rules]
        assert len(rules) == len(DEFAULT_RULES) - 1

    @pytest.mark.tra("CLI.Alerts.Remove")
    def test_remove_unknown_rule_fails(self, settings: MonitoringSettings) -> None:
        result = _invoke(["alerts", "remove", "Nope"], settings)

        assert result.exit_code == 1
        assert "No alert rule named 'Nope'" in result.output

    @pytest.mark.tra("CLI.Alerts.Defaults")
    def test_defaults(self, settings: MonitoringSettings) -> None:
        result = _invoke(["alerts", "defaults"], settings)

        assert result.exit_code == 0
        assert f"Installed {len(DEFAULT_RULES)} default alert rules" in result.stdout

    @pytest.mark.tra("CLI.Alerts.Test")
    def test_test_alert_delivered(self, settings: MonitoringSettings) -> None:
        channel = RecordingChannel()
        monitor = _monitor(
            settings, alert_dispatcher=AlertDispatcher({"log": channel})
        )
        _invoke(["alerts", "add", "--name", "Disk"], settings, monitor)

        result = _invoke(["alerts", "test", "Disk"], settings, monitor)

        assert result.exit_code == 0
        assert "Delivered via: log" in result.stdout
        assert channel.sent[0].name == "Test: Disk"
        assert channel.sent[0].context["test"] is True

    @pytest.mark.tra("CLI.Alerts.Test")
    def test_test_alert_with_failed_channel(self, settings: MonitoringSettings) -> None:
        monitor = _monitor(settings, alert_dispatcher=AlertDispatcher())
        _invoke(["alerts", "add", "--name", "Disk"], settings, monitor)

        result = _invoke(["alerts", "test", "Disk"], settings, monitor)

        assert result.exit_code == 1
        assert "Delivered via: none" in result.stdout
