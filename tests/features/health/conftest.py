"""Step definitions for health aggregation scenarios."""

from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace

import pytest
from pytest_bdd import given, parsers, then, when
from tests.doubles import StaticProbe

from storepulse.adapters.probes import StorageCheck
from storepulse.core.manager import MonitoringManager
from storepulse.core.models import CheckResult, HealthStatus, Status


@dataclass
class HealthScenarioContext:
    probes: dict = field(default_factory=dict)
    probe_timeout: float = 2.0
    result: HealthStatus | None = None


class RaisingProbe:
    def __init__(self, message: str) -> None:
        self.message = message

    def check(self) -> CheckResult:
        raise ConnectionError(self.message)


@pytest.fixture
def ctx() -> HealthScenarioContext:
    """Fresh scenario context for each test."""
    return HealthScenarioContext()


@given(parsers.parse("health probes time out after {seconds:d} second"))
def step_timeout(ctx: HealthScenarioContext, seconds: int) -> None:
    ctx.probe_timeout = float(seconds)


@given(parsers.parse('a "{name}" check reporting "{status}"'))
def step_static_check(ctx: HealthScenarioContext, name: str, status: str) -> None:
    ctx.probes[name] = StaticProbe(Status(status), f"{name} is {status}")


@given(parsers.parse('a "{name}" check that raises "{message}"'))
def step_raising_check(ctx: HealthScenarioContext, name: str, message: str) -> None:
    ctx.probes[name] = RaisingProbe(message)


@given(parsers.parse("a storage directory with disk usage at {percent:d} percent"))
def step_storage(ctx: HealthScenarioContext, tmp_path: Path, percent: int) -> None:
    def usage(path: str) -> SimpleNamespace:
        return SimpleNamespace(total=100, used=percent, free=100 - percent)

    ctx.probes["storage"] = StorageCheck(tmp_path, usage)


@when("the health checks run")
def step_run(ctx: HealthScenarioContext) -> None:
    manager = MonitoringManager(
        health_probes=ctx.probes, probe_timeout=ctx.probe_timeout
    )
    ctx.result = manager.check_health_sync()


@then(parsers.parse('the overall status is "{status}"'))
def step_overall(ctx: HealthScenarioContext, status: str) -> None:
    assert ctx.result is not None
    assert ctx.result.overall is Status(status)


@then(parsers.parse('the "{name}" check reports "{key}" of {value:f}'))
def step_detail(ctx: HealthScenarioContext, name: str, key: str, value: float) -> None:
    assert ctx.result.checks[name].details[key] == value


@then(parsers.parse('the "{name}" check carries the error "{message}"'))
def step_error(ctx: HealthScenarioContext, name: str, message: str) -> None:
    check = ctx.result.checks[name]
    assert check.status is Status.CRITICAL
    assert check.details["error"] == message


@then(parsers.parse('the "{name}" check is "{status}"'))
def step_check_status(ctx: HealthScenarioContext, name: str, status: str) -> None:
    assert ctx.result.checks[name].status is Status(status)
