"""Tests for the ring buffer log storage and the logging handler."""

import logging
import sys
from typing import Any

import pytest

from storepulse.adapters.logging import LogStorageHandler
from storepulse.adapters.storage.ring_buffer import RingBufferLogStorage
from storepulse.core.context import reset_current_request, set_current_request
from storepulse.core.models import LogEntry, RequestContext
from storepulse.core.ports import LogStoragePort

pytestmark = [pytest.mark.tier(1), pytest.mark.storage]


async def _collect(storage: RingBufferLogStorage, **kwargs: Any) -> list[LogEntry]:
    return [e async for e in storage.read(**kwargs)]


def _record(msg: str = "message", level: int = logging.INFO, **kwargs: Any) -> logging.LogRecord:
    return logging.LogRecord(
        name="storepulse.test",
        level=level,
        pathname="/app/checkout.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=kwargs.pop("exc_info", None),
        func="place_order",
    )


class TestRingBufferLogStorage:
    """Tests for RingBufferLogStorage."""

    def test_implements_port(self) -> None:
        assert isinstance(RingBufferLogStorage(), LogStoragePort)

    async def test_evicts_oldest(self) -> None:
        storage = RingBufferLogStorage(max_size=3)
        for i in range(5):
            storage.write(LogEntry(timestamp=float(i), level="INFO", message=f"m{i}"))

        entries = await _collect(storage)

        assert [e.message for e in entries] == ["m2", "m3", "m4"]
        assert len(storage) == 3

    async def test_filters_since_and_level(self) -> None:
        storage = RingBufferLogStorage()
        storage.write(LogEntry(timestamp=1.0, level="ERROR", message="old"))
        storage.write(LogEntry(timestamp=3.0, level="INFO", message="info"))
        storage.write(LogEntry(timestamp=2.0, level="ERROR", message="new"))

        entries = await _collect(storage, since=1.0, level="error")

        assert [e.message for e in entries] == ["new"]

    async def test_sorted_by_timestamp(self) -> None:
        storage = RingBufferLogStorage()
        storage.write(LogEntry(timestamp=5.0, level="INFO", message="b"))
        storage.write(LogEntry(timestamp=1.0, level="INFO", message="a"))

        assert [e.message for e in await _collect(storage)] == ["a", "b"]


class TestLogStorageHandler:
    """Tests for LogStorageHandler."""

    def test_is_logging_handler(self) -> None:
        assert isinstance(LogStorageHandler(RingBufferLogStorage()), logging.Handler)

    async def test_emit_writes_entry_with_default_attributes(self) -> None:
        storage = RingBufferLogStorage()
        handler = LogStorageHandler(storage)

        handler.emit(_record("Collected metrics"))

        entry = (await _collect(storage))[0]
        assert entry.message == "Collected metrics"
        assert entry.level == "INFO"
        assert entry.attributes == {
            "logger": "storepulse.test",
            "funcName": "place_order",
            "lineno": 42,
        }

    async def test_scalar_extras_are_kept(self) -> None:
        storage = RingBufferLogStorage()
        log = logging.getLogger("storepulse.test.extras")
        log.propagate = False
        log.setLevel(logging.INFO)
        handler = LogStorageHandler(storage)
        log.addHandler(handler)
        try:
            log.error(
                "Failed to collect %s metrics",
                "database",
                extra={"collector": "database", "attempt": 2, "payload": {"x": 1}},
            )
        finally:
            log.removeHandler(handler)

        entry = (await _collect(storage))[0]
        assert entry.message == "Failed to collect database metrics"
        assert entry.attributes["collector"] == "database"
        assert entry.attributes["attempt"] == 2
        assert "payload" not in entry.attributes

    async def test_exception_info_is_captured(self) -> None:
        storage = RingBufferLogStorage()
        handler = LogStorageHandler(storage, include_attrs=["logger"])
        try:
            raise ValueError("bad threshold")
        except ValueError:
            record = _record("failed", logging.ERROR, exc_info=sys.exc_info())

        handler.emit(record)

        attributes = (await _collect(storage))[0].attributes
        assert attributes["exc_type"] == "ValueError"
        assert attributes["exc_message"] == "bad threshold"
        assert "Traceback" in attributes["exc_traceback"]
        assert "funcName" not in attributes

    def test_storage_failure_is_handled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        class BrokenStorage:
            def write(self, entry: LogEntry) -> None:
                raise OSError("disk full")

        handled: list[logging.LogRecord] = []
        handler = LogStorageHandler(BrokenStorage())  # type: ignore[arg-type]
        monkeypatch.setattr(handler, "handleError", handled.append)

        handler.emit(_record())

        assert len(handled) == 1

    async def test_bound_request_is_attached(self) -> None:
        storage = RingBufferLogStorage()
        handler = LogStorageHandler(storage, include_attrs=["thread"])
        token = set_current_request(RequestContext(method="POST", uri="/checkout?step=2"))
        try:
            handler.emit(_record("Payment declined"))
        finally:
            reset_current_request(token)

        attributes = (await _collect(storage))[0].attributes
        assert attributes["request_method"] == "POST"
        assert attributes["request_path"] == "/checkout"
        assert "thread" in attributes
