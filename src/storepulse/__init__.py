"""storepulse: metric collection, alerting and health aggregation for a storefront."""

from storepulse.core.manager import MonitoringManager
from storepulse.core.models import Alert, AlertRule, HealthStatus, Status
from storepulse.core.timer import TimerContext

__version__ = "0.4.0"

__all__ = [
    "Alert",
    "AlertRule",
    "HealthStatus",
    "MonitoringManager",
    "Status",
    "TimerContext",
    "__version__",
]
