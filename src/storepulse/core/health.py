"""Health classification and aggregation.

Thresholds are non-overlapping: a reading exactly on a boundary belongs to
the less severe band above it (80 % disk is warning, 90 % is still warning,
anything over 90 % is critical).
"""

from collections.abc import Iterable

from storepulse.core.models import CheckResult, Status

DB_WARNING_MS = 1000.0
DB_CRITICAL_MS = 5000.0
CACHE_WARNING_MS = 100.0
USAGE_WARNING_PERCENT = 80.0
USAGE_CRITICAL_PERCENT = 90.0


def classify_latency(
    latency_ms: float,
    warning_ms: float = DB_WARNING_MS,
    critical_ms: float = DB_CRITICAL_MS,
) -> Status:
    """Classify a round-trip latency.

    Below warning_ms is healthy, warning_ms..critical_ms inclusive is warning,
    above critical_ms is critical.
    """
    if latency_ms > critical_ms:
        return Status.CRITICAL
    if latency_ms >= warning_ms:
        return Status.WARNING
    return Status.HEALTHY


def classify_usage(
    percent: float,
    warning: float = USAGE_WARNING_PERCENT,
    critical: float = USAGE_CRITICAL_PERCENT,
) -> Status:
    """Classify a usage percentage (disk, memory)."""
    if percent > critical:
        return Status.CRITICAL
    if percent >= warning:
        return Status.WARNING
    return Status.HEALTHY


def overall_status(checks: Iterable[CheckResult]) -> Status:
    """Return the worst status among checks.

    Scans once; the first critical result ends the scan. No checks at all is
    healthy.
    """
    overall = Status.HEALTHY
    for check in checks:
        if check.status is Status.CRITICAL:
            return Status.CRITICAL
        if check.status is Status.WARNING:
            overall = Status.WARNING
    return overall
