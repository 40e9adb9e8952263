"""Integration tests for SQLiteLogStorage against a file database."""

import logging

import pytest

from storepulse.adapters.logging import LogStorageHandler
from storepulse.adapters.storage.sqlite_logs import SQLiteLogStorage
from storepulse.core.models import LogEntry
from storepulse.core.ports import LogStoragePort

pytestmark = [pytest.mark.tier(2), pytest.mark.storage]


async def _read_all(storage: SQLiteLogStorage, **kwargs) -> list[LogEntry]:
    return [entry async for entry in storage.read(**kwargs)]


@pytest.fixture
def storage(log_db_path: str) -> SQLiteLogStorage:
    storage = SQLiteLogStorage(log_db_path)
    storage.write(LogEntry(1000.0, "INFO", "order placed", {"order_id": 7}))
    storage.write(LogEntry(1002.0, "ERROR", "payment failed"))
    storage.write(LogEntry(1001.0, "info", "order packed"))
    return storage


class TestSQLiteLogStorage:
    """Tests for SQLiteLogStorage."""

    @pytest.mark.tra("Adapter.SQLiteLogStorage.Port")
    def test_implements_port(self, log_db_path: str) -> None:
        assert isinstance(SQLiteLogStorage(log_db_path), LogStoragePort)

    @pytest.mark.tra("Adapter.SQLiteLogStorage.Memory")
    def test_rejects_memory_database(self) -> None:
        with pytest.raises(ValueError, match="file database"):
            SQLiteLogStorage(":memory:")

    @pytest.mark.tra("Adapter.SQLiteLogStorage.Read")
    async def test_reads_in_timestamp_order(self, storage: SQLiteLogStorage) -> None:
        entries = await _read_all(storage)

        assert [e.message for e in entries] == [
            "order placed",
            "order packed",
            "payment failed",
        ]
        assert entries[0].attributes == {"order_id": 7}

    @pytest.mark.tra("Adapter.SQLiteLogStorage.Read.Since")
    async def test_since_is_exclusive(self, storage: SQLiteLogStorage) -> None:
        entries = await _read_all(storage, since=1001.0)

        assert [e.message for e in entries] == ["payment failed"]

    @pytest.mark.tra("Adapter.SQLiteLogStorage.Read.Level")
    async def test_level_filter_is_case_insensitive(
        self, storage: SQLiteLogStorage
    ) -> None:
        entries = await _read_all(storage, level="INFO")

        assert [e.message for e in entries] == ["order placed", "order packed"]

    @pytest.mark.tra("Adapter.SQLiteLogStorage.DeleteBefore")
    async def test_delete_before(self, storage: SQLiteLogStorage) -> None:
        removed = storage.delete_before(1001.5)

        assert removed == 2
        assert [e.message for e in await _read_all(storage)] == ["payment failed"]

    @pytest.mark.tra("Adapter.SQLiteLogStorage.Persistence")
    async def test_entries_survive_reopen(
        self, storage: SQLiteLogStorage, log_db_path: str
    ) -> None:
        reopened = SQLiteLogStorage(log_db_path)

        assert len(await _read_all(reopened)) == 3


class TestHandlerToSQLite:
    @pytest.mark.tra("Adapter.LogStorageHandler.SQLite")
    async def test_logged_records_are_persisted(self, log_db_path: str) -> None:
        storage = SQLiteLogStorage(log_db_path)
        logger = logging.getLogger("storepulse.tests.sqlite_capture")
        logger.setLevel(logging.INFO)
        handler = LogStorageHandler(storage)
        logger.addHandler(handler)
        try:
            logger.warning("Stock low for %s", "SKU-1", extra={"sku": "SKU-1"})
        finally:
            logger.removeHandler(handler)

        entries = await _read_all(storage)

        assert len(entries) == 1
        assert entries[0].level == "WARNING"
        assert entries[0].message == "Stock low for SKU-1"
        assert entries[0].attributes["sku"] == "SKU-1"
