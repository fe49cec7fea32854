"""Tests for the SQLite key-value store adapter."""

import io
from collections.abc import AsyncGenerator

import httpx
import pytest

from telemetripy.adapters.storage.sqlite import SQLiteKeyValueStore
from telemetripy.core.config import MonitoringConfig
from telemetripy.core.models import LogLevel
from telemetripy.core.persistence import LOGS_KEY, MONITORING_KEY
from telemetripy.core.ports import KeyValueStorePort
from telemetripy.logger import StructuredLogger
from telemetripy.manager import TelemetryManager
from tests.collector import COLLECTOR_KEY, COLLECTOR_URL, CollectorStub

# All tests in this module are tier 2 (integration tests with file I/O)
pytestmark = pytest.mark.tier(2)


@pytest.fixture
async def memory_store() -> AsyncGenerator[SQLiteKeyValueStore]:
    """In-memory key-value store with proper cleanup."""
    store = SQLiteKeyValueStore(":memory:")
    yield store
    await store.close()


@pytest.fixture
async def file_store(kv_db_path: str) -> AsyncGenerator[SQLiteKeyValueStore]:
    store = SQLiteKeyValueStore(kv_db_path)
    yield store
    await store.close()


class TestSQLiteKeyValueStore:
    """Tests for SQLiteKeyValueStore."""

    @pytest.mark.storage
    def test_implements_key_value_store_port(self) -> None:
        """SQLiteKeyValueStore must satisfy KeyValueStorePort protocol."""
        assert isinstance(SQLiteKeyValueStore(":memory:"), KeyValueStorePort)

    @pytest.mark.storage
    async def test_missing_key_reads_none(self, memory_store: SQLiteKeyValueStore) -> None:
        assert await memory_store.get("absent") is None

    @pytest.mark.storage
    async def test_set_then_get(self, memory_store: SQLiteKeyValueStore) -> None:
        await memory_store.set(MONITORING_KEY, "[]")

        assert await memory_store.get(MONITORING_KEY) == "[]"

    @pytest.mark.storage
    async def test_set_overwrites(self, file_store: SQLiteKeyValueStore) -> None:
        await file_store.set("k", "first")
        await file_store.set("k", "second")

        assert await file_store.get("k") == "second"

    @pytest.mark.storage
    async def test_delete(self, file_store: SQLiteKeyValueStore) -> None:
        await file_store.set("k", "v")

        await file_store.delete("k")
        await file_store.delete("k")

        assert await file_store.get("k") is None

    @pytest.mark.storage
    async def test_file_database_shared_by_sync_and_async(
        self, file_store: SQLiteKeyValueStore
    ) -> None:
        """Sync writes are visible to async reads on a file database."""
        file_store.set_sync(LOGS_KEY, '[{"message": "a"}]')
        await file_store.set(MONITORING_KEY, "[1]")

        assert await file_store.get(LOGS_KEY) == '[{"message": "a"}]'
        assert file_store.get_sync(MONITORING_KEY) == "[1]"

    @pytest.mark.storage
    async def test_file_database_survives_reopen(self, kv_db_path: str) -> None:
        first = SQLiteKeyValueStore(kv_db_path)
        await first.set("k", "kept")
        await first.close()

        second = SQLiteKeyValueStore(kv_db_path)
        try:
            assert await second.get("k") == "kept"
        finally:
            await second.close()

    @pytest.mark.storage
    def test_sync_operations(self, kv_db_path: str) -> None:
        store = SQLiteKeyValueStore(kv_db_path)

        store.set_sync("k", "v1")
        store.set_sync("k", "v2")
        assert store.get_sync("k") == "v2"
        store.delete_sync("k")

        assert store.get_sync("k") is None


class TestSQLiteFallback:
    """Local fallback and audit trail on SQLite."""

    @pytest.mark.storage
    async def test_failed_flush_persists_to_sqlite(
        self,
        kv_db_path: str,
        file_store: SQLiteKeyValueStore,
        logger: StructuredLogger,
        collector: CollectorStub,
        http_client: httpx.AsyncClient,
    ) -> None:
        collector.fail = True
        manager = TelemetryManager(
            MonitoringConfig(environment="test", api_endpoint=COLLECTOR_URL, api_key=COLLECTOR_KEY),
            logger=logger,
            store=file_store,
            http_client=http_client,
        )
        manager.track_api_call("/bookings", "POST", 201, 120.0)

        await manager.flush()

        [stored] = await manager.get_stored_monitoring_data()
        assert stored["apiMetrics"][0]["endpoint"] == "/bookings"
        reopened = SQLiteKeyValueStore(kv_db_path)
        try:
            assert await reopened.get(MONITORING_KEY) is not None
        finally:
            await reopened.close()
        manager.destroy()

    @pytest.mark.storage
    async def test_audit_trail_persists_to_sqlite(self, file_store: SQLiteKeyValueStore) -> None:
        logger = StructuredLogger(
            environment="production",
            level=LogLevel.INFO,
            audit_store=file_store,
            stream=io.StringIO(),
        )

        for i in range(105):
            logger.info(f"entry {i}")

        stored = logger.get_stored_logs()
        assert len(stored) == 100
        assert stored[0]["message"] == "entry 5"
        logger.close()
