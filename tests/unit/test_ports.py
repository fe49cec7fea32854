"""Tests for port interfaces."""

from collections.abc import Mapping, Sequence

import pytest

from telemetripy.adapters.platform import NullTelemetrySource, RecordedTelemetrySource
from telemetripy.adapters.storage import InMemoryKeyValueStore, SQLiteKeyValueStore
from telemetripy.core.ports import (
    EntryCallback,
    HeapUsage,
    KeyValueStorePort,
    PerformanceEntry,
    PlatformTelemetrySource,
)


class TestKeyValueStorePort:
    """Tests for KeyValueStorePort protocol."""

    @pytest.mark.core
    def test_protocol_has_async_and_sync_methods(self) -> None:
        """KeyValueStorePort defines async get/set/delete and sync variants."""
        for name in ("get", "set", "delete", "get_sync", "set_sync", "delete_sync"):
            assert hasattr(KeyValueStorePort, name)

    @pytest.mark.core
    def test_class_implementing_protocol_is_recognized(self) -> None:
        """A class with all six methods satisfies KeyValueStorePort."""

        class FakeStore:
            async def get(self, key: str) -> str | None:
                return None

            async def set(self, key: str, value: str) -> None:
                pass

            async def delete(self, key: str) -> None:
                pass

            def get_sync(self, key: str) -> str | None:
                return None

            def set_sync(self, key: str, value: str) -> None:
                pass

            def delete_sync(self, key: str) -> None:
                pass

        assert isinstance(FakeStore(), KeyValueStorePort)

    @pytest.mark.core
    def test_class_missing_sync_methods_is_rejected(self) -> None:
        """An async-only store does not satisfy KeyValueStorePort."""

        class AsyncOnlyStore:
            async def get(self, key: str) -> str | None:
                return None

            async def set(self, key: str, value: str) -> None:
                pass

            async def delete(self, key: str) -> None:
                pass

        assert not isinstance(AsyncOnlyStore(), KeyValueStorePort)

    @pytest.mark.storage
    def test_bundled_adapters_satisfy_protocol(self, kv_db_path: str) -> None:
        """Both storage adapters implement KeyValueStorePort."""
        assert isinstance(InMemoryKeyValueStore(), KeyValueStorePort)
        assert isinstance(SQLiteKeyValueStore(kv_db_path), KeyValueStorePort)


class TestPlatformTelemetrySource:
    """Tests for PlatformTelemetrySource protocol."""

    @pytest.mark.core
    def test_bundled_sources_satisfy_protocol(self) -> None:
        """Null and recorded sources implement PlatformTelemetrySource."""
        assert isinstance(NullTelemetrySource(), PlatformTelemetrySource)
        assert isinstance(RecordedTelemetrySource(), PlatformTelemetrySource)

    @pytest.mark.core
    def test_class_implementing_protocol_is_recognized(self) -> None:
        """A minimal custom host source satisfies the protocol."""

        class FakeSource:
            def current_url(self) -> str:
                return ""

            def user_agent(self) -> str:
                return ""

            def navigation_timing(self) -> Mapping[str, float] | None:
                return None

            def entries_by_type(self, entry_type: str) -> Sequence[PerformanceEntry]:
                return []

            def heap_usage(self) -> HeapUsage | None:
                return None

            def mark(self, name: str) -> None:
                pass

            def measure(self, name: str, start_mark: str, end_mark: str | None = None) -> float:
                return 0.0

            def observe(self, entry_type: str, callback: EntryCallback) -> None:
                return None

        assert isinstance(FakeSource(), PlatformTelemetrySource)
