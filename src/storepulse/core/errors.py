"""Exception hierarchy.

Only InvalidAlertRuleError reaches callers of the package; the others are
raised inside adapters and caught by the manager, which logs them and
degrades the affected result.
"""


class StorepulseError(Exception):
    """Base class for all storepulse errors."""


class CollectorError(StorepulseError):
    """A metrics collector failed as a whole."""

    def __init__(self, collector: str, message: str) -> None:
        super().__init__(f"{collector}: {message}")
        self.collector = collector


class HealthCheckError(StorepulseError):
    """A health probe could not complete."""


class AlertChannelError(StorepulseError):
    """An alert could not be delivered through a channel."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class InvalidAlertRuleError(StorepulseError, ValueError):
    """An alert rule definition is malformed."""
