"""Step definitions for alert rule scenarios."""

from dataclasses import dataclass, field

import pytest
from pytest_bdd import given, parsers, then, when
from tests.doubles import BrokenChannel, RecordingChannel

from storepulse.core.alerts import AlertDispatcher
from storepulse.core.manager import MonitoringManager
from storepulse.core.models import AlertRule


@dataclass
class AlertScenarioContext:
    channel: RecordingChannel = field(default_factory=RecordingChannel)
    dispatcher: AlertDispatcher = field(default_factory=AlertDispatcher)
    manager: MonitoringManager | None = None


@pytest.fixture
def ctx() -> AlertScenarioContext:
    """Fresh scenario context for each test."""
    return AlertScenarioContext()


def _add_rule(ctx: AlertScenarioContext, rule: AlertRule) -> None:
    ctx.manager.setup_alerts([*ctx.manager.get_alert_rules(), rule])


@given("a monitoring manager delivering alerts to a recording channel")
def step_manager(ctx: AlertScenarioContext) -> None:
    ctx.dispatcher.register("log", ctx.channel)
    ctx.manager = MonitoringManager(alert_dispatcher=ctx.dispatcher)


@given(
    parsers.parse('an alert rule "{name}" on "{pattern}" when value > {threshold:d}')
)
def step_rule(ctx: AlertScenarioContext, name: str, pattern: str, threshold: int) -> None:
    _add_rule(ctx, AlertRule(name=name, metric_pattern=pattern, threshold=threshold))


@given(
    parsers.parse(
        'an alert rule "{name}" on "{pattern}" when value > {threshold:d}'
        ' via "{first}" and "{second}"'
    )
)
def step_rule_with_channels(
    ctx: AlertScenarioContext,
    name: str,
    pattern: str,
    threshold: int,
    first: str,
    second: str,
) -> None:
    _add_rule(
        ctx,
        AlertRule(
            name=name,
            metric_pattern=pattern,
            threshold=threshold,
            channels=(first, second),
        ),
    )


@given(parsers.parse('the "{name}" channel is unreachable'))
def step_broken_channel(ctx: AlertScenarioContext, name: str) -> None:
    ctx.dispatcher.register(name, BrokenChannel())


@when(parsers.parse('the metric "{name}" is recorded with value {value:d}'))
def step_record(ctx: AlertScenarioContext, name: str, value: int) -> None:
    ctx.manager.record_metric(name, value)


@then(parsers.parse('{count:d} alert named "{name}" is delivered'))
def step_delivered(ctx: AlertScenarioContext, count: int, name: str) -> None:
    assert [alert.name for alert in ctx.channel.sent] == [name] * count


@then(parsers.parse('the alert message is "{message}"'))
def step_message(ctx: AlertScenarioContext, message: str) -> None:
    assert ctx.channel.sent[-1].message == message


@then("no alert is delivered")
def step_none(ctx: AlertScenarioContext) -> None:
    assert ctx.channel.sent == []
