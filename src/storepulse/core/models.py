"""Core domain models for monitoring data."""

import enum
import time
from dataclasses import dataclass, field
from typing import Any

from storepulse.core.errors import InvalidAlertRuleError

MetricValue = float | int | str | bool | list[Any] | dict[str, Any] | None
MetricBundle = dict[str, Any]

VALID_OPERATORS = (">", ">=", "<", "<=", "==", "!=")


class Status(enum.Enum):
    """Health status of a single check or of the whole system.

    Members compare by severity: healthy < warning < critical.
    """

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Status):
            return NotImplemented
        return self.rank < other.rank


_STATUS_RANK = {Status.HEALTHY: 0, Status.WARNING: 1, Status.CRITICAL: 2}


@dataclass(frozen=True)
class CustomMetric:
    """An application-recorded metric.

    The kind is carried by the name prefix: ``counters.``, ``gauges.``,
    ``timings.`` or ``histograms.``.

    Attributes:
        name: Dotted metric name (e.g., counters.orders.placed).
        value: The recorded value, stored as given.
        tags: Key-value pairs rendered as exposition labels.
        timestamp: Unix timestamp in seconds.
    """

    name: str
    value: MetricValue
    tags: dict[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "tags": dict(self.tags),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class AlertRule:
    """A threshold rule evaluated against recorded metrics.

    Attributes:
        name: Human readable rule name, used as the alert name.
        metric_pattern: Glob over metric names; None matches every name.
        threshold: Value compared against; None skips the comparison.
        operator: One of ``>``, ``>=``, ``<``, ``<=``, ``==``, ``!=``.
        severity: Severity copied onto triggered alerts.
        channels: Delivery channel names.
    """

    name: str = "Unknown Alert"
    metric_pattern: str | None = None
    threshold: float | int | bool | str | None = None
    operator: str = ">"
    severity: str = "warning"
    channels: tuple[str, ...] = ("log",)

    def __post_init__(self) -> None:
        if self.operator not in VALID_OPERATORS:
            raise InvalidAlertRuleError(
                f"Unsupported operator {self.operator!r} in rule {self.name!r}"
            )
        if isinstance(self.channels, str):
            raise InvalidAlertRuleError(
                f"Rule {self.name!r} channels must be a list of names"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlertRule":
        """Build a rule from its JSON shape, applying defaults.

        Args:
            data: Mapping with optional keys name, metric_pattern, threshold,
                operator, severity and channels.

        Returns:
            The parsed rule.

        Raises:
            InvalidAlertRuleError: If the mapping holds an invalid definition.
        """
        if not isinstance(data, dict):
            raise InvalidAlertRuleError(f"Alert rule must be a mapping, got {data!r}")
        channels = data.get("channels") or ["log"]
        if isinstance(channels, str):
            channels = [channels]
        return cls(
            name=data.get("name") or "Unknown Alert",
            metric_pattern=data.get("metric_pattern"),
            threshold=data.get("threshold"),
            operator=data.get("operator") or ">",
            severity=data.get("severity") or "warning",
            channels=tuple(channels),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "metric_pattern": self.metric_pattern,
            "threshold": self.threshold,
            "operator": self.operator,
            "severity": self.severity,
            "channels": list(self.channels),
        }


@dataclass(frozen=True)
class Alert:
    """A triggered alert.

    Attributes:
        name: Name of the rule that fired.
        severity: Severity of the rule (warning, critical, ...).
        message: Human readable description.
        context: Metric name, value, tags and the rule definition.
        timestamp: Unix timestamp in seconds.
    """

    name: str
    severity: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def is_critical(self) -> bool:
        return self.severity == "critical"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "severity": self.severity,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp,
        }


@dataclass
class CheckResult:
    """Outcome of one health probe.

    Attributes:
        status: Classified status.
        message: Human readable summary.
        details: Extra diagnostic fields (latency, percentages, errors).
    """

    status: Status
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "message": self.message, **self.details}


@dataclass(frozen=True)
class HealthStatus:
    """Composite health of the platform at one point in time."""

    overall: Status
    checks: dict[str, CheckResult]
    timestamp: float = field(default_factory=time.time)

    @property
    def is_healthy(self) -> bool:
        return self.overall is Status.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.overall.value,
            "checks": {name: check.to_dict() for name, check in self.checks.items()},
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class RequestContext:
    """Immutable view of the current HTTP request and its response.

    Header names are stored lower-cased.
    """

    method: str = "GET"
    uri: str = "/"
    scheme: str = "http"
    protocol: str = "HTTP/1.1"
    host: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    remote_addr: str = ""
    body_size: int = 0
    started_at: float = field(default_factory=time.time)
    status_code: int | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    csrf_token: bool = False

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    @property
    def is_https(self) -> bool:
        return self.scheme == "https"


@dataclass(frozen=True)
class LogEntry:
    """A structured log entry.

    Attributes:
        timestamp: Unix timestamp in seconds.
        level: Log level (e.g., INFO, ERROR, DEBUG).
        message: The log message.
        attributes: Additional structured fields.
    """

    timestamp: float
    level: str
    message: str
    attributes: dict[str, str | int | float | bool] = field(default_factory=dict)
