"""Shared test fixtures for all test modules."""

import io
import random
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest

from telemetripy.adapters.platform import RecordedTelemetrySource
from telemetripy.adapters.storage.in_memory import InMemoryKeyValueStore
from telemetripy.core.config import MonitoringConfig
from telemetripy.core.models import LogLevel
from telemetripy.logger import StructuredLogger
from telemetripy.manager import TelemetryManager
from tests.collector import COLLECTOR_KEY, COLLECTOR_URL, CollectorStub


@pytest.fixture
def kv_db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for key-value storage tests."""
    return str(tmp_path / "telemetry.db")


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    """Fixture providing an empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def log_stream() -> io.StringIO:
    """Console stream captured by the ``logger`` fixture."""
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> Iterator[StructuredLogger]:
    """Logger at TRACE level writing JSON lines to ``log_stream``."""
    structured = StructuredLogger(environment="test", level=LogLevel.TRACE, stream=log_stream)
    yield structured
    structured.close()


@pytest.fixture
def source() -> RecordedTelemetrySource:
    """Scriptable host source with a fixed url and user agent."""
    return RecordedTelemetrySource(url="https://app.test/packages", user_agent="pytest-agent")


# === Collector Fixtures ===


@pytest.fixture
def collector() -> CollectorStub:
    return CollectorStub()


@pytest.fixture
def http_client(collector: CollectorStub) -> httpx.AsyncClient:
    """AsyncClient routed to ``collector`` through httpx.MockTransport."""
    return httpx.AsyncClient(transport=httpx.MockTransport(collector.handler))


# === Manager Fixtures ===


@pytest.fixture
def make_manager(
    logger: StructuredLogger,
    store: InMemoryKeyValueStore,
    source: RecordedTelemetrySource,
    http_client: httpx.AsyncClient,
) -> Iterator[Callable[..., TelemetryManager]]:
    """Factory fixture that builds TelemetryManager instances.

    Keyword arguments are MonitoringConfig fields. The collector endpoint
    and key are set unless ``collector=False`` is passed. ``rng`` replaces
    the sampling random source.

    Usage:
        def test_something(make_manager):
            manager = make_manager(sample_rate=0.5, rng=random.Random(1))
    """
    created: list[TelemetryManager] = []

    def _make(collector: bool = True, rng: random.Random | None = None, **fields: Any) -> TelemetryManager:
        if collector:
            fields.setdefault("api_endpoint", COLLECTOR_URL)
            fields.setdefault("api_key", COLLECTOR_KEY)
        fields.setdefault("environment", "test")
        fields.setdefault("build_version", "1.2.3")
        manager = TelemetryManager(
            MonitoringConfig(**fields),
            logger=logger,
            store=store,
            source=source,
            http_client=http_client,
            rng=rng,
        )
        created.append(manager)
        return manager

    yield _make

    for manager in created:
        manager.destroy()
