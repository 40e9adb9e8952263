"""Logging bridge that captures the service's own log records.

Records are converted to LogEntry values and written to a LogStoragePort,
which the HTTP adapter serves at /logs.
"""

import logging

from storepulse.core.context import get_current_request
from storepulse.core.models import LogEntry
from storepulse.core.ports import LogStoragePort

Scalar = str | int | float | bool

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_SOURCE_ATTRS = {
    "logger": lambda record: record.name,
    "funcName": lambda record: record.funcName or "",
    "lineno": lambda record: record.lineno,
    "pathname": lambda record: record.pathname,
    "thread": lambda record: record.threadName or "",
}

_DEFAULT_INCLUDE_ATTRS = ("logger", "funcName", "lineno")


class LogStorageHandler(logging.Handler):
    """Logging handler that writes log records to a LogStoragePort.

    Scalar ``extra`` fields become entry attributes; exceptions are stored as
    ``exc_type``, ``exc_message`` and ``exc_traceback``. While a request is
    bound by the ASGI middleware, its method and path are attached as
    ``request_method`` and ``request_path``.

    Example:
        ```python
        storage = RingBufferLogStorage(max_size=500)
        logging.getLogger("storepulse").addHandler(LogStorageHandler(storage))
        ```
    """

    def __init__(
        self,
        storage: LogStoragePort,
        include_attrs: list[str] | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        """Initialize the handler.

        Args:
            storage: Where entries are written.
            include_attrs: Source attributes to keep, from ``logger``,
                ``funcName``, ``lineno``, ``pathname`` and ``thread``.
                Defaults to logger, funcName and lineno.
            level: Minimum level handled.
        """
        super().__init__(level)
        self._storage = storage
        self._include_attrs = tuple(include_attrs or _DEFAULT_INCLUDE_ATTRS)
        self._exc_formatter = logging.Formatter()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._storage.write(self.to_entry(record))
        except Exception:
            self.handleError(record)

    def to_entry(self, record: logging.LogRecord) -> LogEntry:
        attributes: dict[str, Scalar] = {
            name: _SOURCE_ATTRS[name](record)
            for name in self._include_attrs
            if name in _SOURCE_ATTRS
        }
        attributes.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and isinstance(value, Scalar)
        )

        request = get_current_request()
        if request is not None:
            attributes.setdefault("request_method", request.method)
            attributes.setdefault("request_path", request.uri.split("?", 1)[0])

        exc_type, exc_value, _ = record.exc_info or (None, None, None)
        if exc_type is not None:
            attributes["exc_type"] = exc_type.__name__
            attributes["exc_message"] = str(exc_value)
            attributes["exc_traceback"] = self._exc_formatter.formatException(
                record.exc_info
            )

        return LogEntry(
            timestamp=record.created,
            level=record.levelname,
            message=record.getMessage(),
            attributes=attributes,
        )
