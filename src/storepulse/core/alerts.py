"""Alert rule matching and delivery."""

import logging
import operator
from collections.abc import Callable, Mapping
from fnmatch import fnmatchcase
from typing import Any

from storepulse.core.models import Alert, AlertRule
from storepulse.core.ports import AlertChannel

logger = logging.getLogger(__name__)

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}


def matches_rule(rule: AlertRule, name: str, value: Any) -> bool:
    """Return True if a metric write satisfies the rule.

    The name must match ``metric_pattern`` (glob, case-sensitive) when one is
    set, and the value must satisfy ``value <operator> threshold`` when a
    threshold is set. A rule with neither matches every write. Values that
    cannot be compared with the threshold never match.
    """
    if rule.metric_pattern is not None and not fnmatchcase(name, rule.metric_pattern):
        return False
    if rule.threshold is None:
        return True
    compare = _OPERATORS[rule.operator]
    try:
        return bool(compare(value, rule.threshold))
    except TypeError:
        return False


def build_alert(
    rule: AlertRule, name: str, value: Any, tags: dict[str, str] | None = None
) -> Alert:
    """Create the alert raised when rule matches a metric write."""
    return Alert(
        name=rule.name,
        severity=rule.severity,
        message=f"Metric {name} triggered alert with value {value}",
        context={
            "metric": name,
            "value": value,
            "tags": dict(tags or {}),
            "rule": rule.to_dict(),
        },
    )


class AlertDispatcher:
    """Delivers alerts through named channels.

    Channels are tried in the order given. A failing or unknown channel is
    logged and the remaining channels are still attempted.
    """

    def __init__(self, channels: Mapping[str, AlertChannel] | None = None) -> None:
        self._channels: dict[str, AlertChannel] = dict(channels or {})

    def register(self, name: str, channel: AlertChannel) -> None:
        self._channels[name] = channel

    @property
    def channel_names(self) -> list[str]:
        return sorted(self._channels)

    def send(self, alert: Alert, channels: tuple[str, ...] | list[str]) -> list[str]:
        """Send alert through each named channel.

        Args:
            alert: The alert to deliver.
            channels: Channel names, in delivery order.

        Returns:
            Names of the channels that delivered successfully.
        """
        delivered = []
        for name in channels:
            channel = self._channels.get(name)
            if channel is None:
                logger.error(
                    "Failed to send alert via %s",
                    name,
                    extra={"channel": name, "error": "unknown channel"},
                )
                continue
            try:
                channel.send(alert)
            except Exception as exc:
                logger.error(
                    "Failed to send alert via %s",
                    name,
                    extra={"channel": name, "error": str(exc), "alert": alert.name},
                )
                continue
            delivered.append(name)
        return delivered


DEFAULT_RULES = (
    AlertRule(
        name="High Memory Usage",
        metric_pattern="system.memory.usage_percent",
        threshold=90,
        operator=">",
        severity="warning",
    ),
    AlertRule(
        name="High Disk Usage",
        metric_pattern="system.disk.usage_percent",
        threshold=85,
        operator=">",
        severity="critical",
    ),
    AlertRule(
        name="High CPU Usage",
        metric_pattern="system.cpu.usage_percent",
        threshold=95,
        operator=">",
        severity="warning",
    ),
    AlertRule(
        name="Database Connection Failed",
        metric_pattern="database.connection.connected",
        threshold=False,
        operator="==",
        severity="critical",
    ),
    AlertRule(
        name="Low Cache Hit Ratio",
        metric_pattern="cache.shared.stats.hit_ratio",
        threshold=80,
        operator="<",
        severity="warning",
    ),
)
