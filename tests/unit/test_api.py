"""Tests for the module-level recording API."""

import io
from collections.abc import AsyncIterator

import httpx
import pytest

from telemetripy import api
from telemetripy.adapters.platform import RecordedTelemetrySource
from telemetripy.adapters.storage.in_memory import InMemoryKeyValueStore
from telemetripy.core.config import MonitoringConfig
from telemetripy.core.models import LogContext
from telemetripy.logger import StructuredLogger
from tests.collector import COLLECTOR_KEY, COLLECTOR_URL, CollectorStub

pytestmark = [pytest.mark.tier(1)]


@pytest.fixture(autouse=True)
async def reset_telemetry(monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[None]:
    """Every test starts and ends without an active telemetry session."""
    monkeypatch.delenv("TELEMETRY_LOG_LEVEL", raising=False)
    await api.shutdown_telemetry()
    yield
    await api.shutdown_telemetry()


@pytest.fixture
async def telemetry(
    logger: StructuredLogger,
    store: InMemoryKeyValueStore,
    source: RecordedTelemetrySource,
    http_client: httpx.AsyncClient,
) -> api.TelemetryContext:
    return api.init_telemetry(
        MonitoringConfig(environment="test", api_endpoint=COLLECTOR_URL, api_key=COLLECTOR_KEY),
        store=store,
        source=source,
        http_client=http_client,
        logger=logger,
    )


class TestBeforeInit:
    """Every facade is a no-op until init_telemetry runs."""

    @pytest.mark.core
    async def test_facades_do_nothing(self) -> None:
        api.log_error("boom", ValueError("x"))
        api.log_warning("careful")
        api.log_info("hello")
        api.log_debug("details")
        api.log_api_call("GET", "/api")
        api.log_user_action("clicked")
        api.log_security_event("port_scan", "low")
        api.track_page_view("/home")
        api.track_button_click("Buy")
        api.track_form_submission("signup", True)
        api.track_search("shoes", 3)
        api.initialize_monitoring(sample_rate=0.5)

        assert api.get_telemetry() is None
        assert await api.get_stored_monitoring_data() == []
        await api.clear_stored_monitoring_data()

    @pytest.mark.core
    async def test_measure_execution_still_runs_function(self) -> None:
        assert api.measure_execution("noop", lambda: 42) == 42


class TestInit:
    """init_telemetry and shutdown_telemetry."""

    @pytest.mark.core
    async def test_init_is_idempotent(self, telemetry: api.TelemetryContext) -> None:
        again = api.init_telemetry(MonitoringConfig(environment="other"))

        assert again is telemetry
        assert api.get_telemetry() is telemetry
        assert telemetry.manager.config.environment == "test"

    @pytest.mark.core
    async def test_init_starts_manager(self, telemetry: api.TelemetryContext) -> None:
        assert telemetry.manager.flush_timer_active

    @pytest.mark.core
    async def test_init_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TELEMETRY_ENV", "staging")
        monkeypatch.setenv("TELEMETRY_SAMPLE_RATE", "0.25")

        context = api.init_telemetry(build_version="9.9.9", logger=StructuredLogger(stream=io.StringIO()))

        config = context.manager.config
        assert (config.environment, config.sample_rate, config.build_version) == (
            "staging",
            0.25,
            "9.9.9",
        )
        assert not config.has_collector

    @pytest.mark.core
    async def test_init_survives_malformed_sample_rate(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TELEMETRY_SAMPLE_RATE", "abc")

        context = api.init_telemetry(logger=StructuredLogger(stream=io.StringIO()))

        assert context.manager.config.sample_rate == 1.0

    @pytest.mark.core
    async def test_default_logger_keeps_audit_trail(self) -> None:
        context = api.init_telemetry(MonitoringConfig(environment="production"))

        api.log_info("Checkout opened", LogContext(component="Checkout"))

        messages = [entry["message"] for entry in context.logger.get_stored_logs()]
        assert "Checkout opened" in messages

    @pytest.mark.core
    async def test_shutdown_flushes_and_releases(
        self, telemetry: api.TelemetryContext, collector: CollectorStub
    ) -> None:
        api.track_page_view("/packages", "Packages")

        await api.shutdown_telemetry()

        assert len(collector.requests) == 1
        assert api.get_telemetry() is None
        assert not telemetry.manager.flush_timer_active


class TestLoggingFacades:
    """Logging functions forward to the StructuredLogger."""

    @pytest.mark.core
    async def test_messages_reach_logger(
        self, telemetry: api.TelemetryContext, log_stream: io.StringIO
    ) -> None:
        api.log_error("Payment failed", ValueError("declined"))
        api.log_warning("Slow response")
        api.log_debug("Cache miss")
        api.log_api_call("GET", "/api/packages")
        api.log_user_action("opened filters")
        api.log_security_event("Repeated login failures", "high")

        output = log_stream.getvalue()
        for expected in (
            "Payment failed",
            "Slow response",
            "Cache miss",
            "API Request: GET /api/packages",
            "User Action: opened filters",
            "Security Event: Repeated login failures (high)",
        ):
            assert expected in output


class TestTrackingFacades:
    """Convenience trackers record user actions."""

    @pytest.mark.core
    async def test_convenience_actions(self, telemetry: api.TelemetryContext) -> None:
        api.track_page_view("/packages", "Packages")
        api.track_button_click("Book now", {"package": "alps"})
        api.track_form_submission("contact", False)
        api.track_search("lake", 4)

        actions = [(a.action, a.element, a.metadata) for a in telemetry.manager.get_actions()]
        assert actions == [
            ("page_view", None, {"url": "/packages", "title": "Packages"}),
            ("button_click", "Book now", {"package": "alps"}),
            ("form_submit", "contact", {"success": False}),
            ("search", None, {"query": "lake", "results": 4}),
        ]

    @pytest.mark.core
    async def test_initialize_monitoring_updates_config(self, telemetry: api.TelemetryContext) -> None:
        api.initialize_monitoring(enable_user_tracking=False)

        api.track_page_view("/packages")

        assert telemetry.manager.get_actions() == []


class TestMeasureExecution:
    """measure_execution times sync and async callables."""

    @pytest.mark.core
    async def test_sync_result(self, telemetry: api.TelemetryContext) -> None:
        result = api.measure_execution("price.compute", lambda: 7)

        assert result == 7
        [metric] = telemetry.manager.get_metrics()
        assert metric.name == "price.compute"
        assert metric.value >= 0

    @pytest.mark.core
    async def test_async_result(self, telemetry: api.TelemetryContext) -> None:
        async def load() -> str:
            return "loaded"

        result = await api.measure_execution("packages.load", load)

        assert result == "loaded"
        assert [m.name for m in telemetry.manager.get_metrics()] == ["packages.load"]

    @pytest.mark.core
    async def test_failure_is_recorded_and_reraised(self, telemetry: api.TelemetryContext) -> None:
        def explode() -> None:
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            api.measure_execution("explode", explode)

        assert [m.name for m in telemetry.manager.get_metrics()] == ["explode"]
        assert [e.message for e in telemetry.manager.get_errors()] == ["bad input"]

    @pytest.mark.core
    async def test_async_failure_is_recorded(self, telemetry: api.TelemetryContext) -> None:
        async def explode() -> None:
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await api.measure_execution("explode.async", explode)

        assert len(telemetry.manager.get_errors()) == 1


class TestStoredData:
    """Fallback storage accessors."""

    @pytest.mark.core
    async def test_get_and_clear(
        self, logger: StructuredLogger, store: InMemoryKeyValueStore
    ) -> None:
        context = api.init_telemetry(MonitoringConfig(environment="test"), store=store, logger=logger)
        api.track_search("fjords", 2)
        await context.manager.flush()

        [stored] = await api.get_stored_monitoring_data()
        assert stored["actions"][0]["action"] == "search"

        await api.clear_stored_monitoring_data()
        assert await api.get_stored_monitoring_data() == []
