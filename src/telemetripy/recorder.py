"""Performance metric recording and host timing extraction."""

import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterator, Sequence
from contextlib import contextmanager
from functools import wraps
from typing import Any, TypeVar

from telemetripy.adapters.platform import NullTelemetrySource
from telemetripy.core.config import runtime_environment
from telemetripy.core.logs import elapsed_ms, epoch_ms
from telemetripy.core.models import (
    ComponentMetrics,
    ComponentPhase,
    LogContext,
    LogLevel,
    MemoryMetrics,
    MetricUnit,
    NavigationMetrics,
    PerformanceMetric,
    PerformanceSummary,
    ResourceMetrics,
    VitalName,
)
from telemetripy.core.ports import PerformanceEntry, PlatformTelemetrySource, Subscription
from telemetripy.core.ring_buffer import RingBuffer
from telemetripy.core.timer import PeriodicTimer
from telemetripy.logger import StructuredLogger

_internal = logging.getLogger(__name__)

MEMORY_SAMPLE_INTERVAL_SECONDS = 5 * 60
DEFAULT_MAX_METRICS = 1000

# Metric name fragments forwarded to the analytics sink in production.
ANALYTICS_FAMILIES = ("core-web-vitals", "api.call")

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])
VitalSink = Callable[[VitalName, float], None]
AnalyticsSink = Callable[[PerformanceMetric], None]


class MetricRecorder:
    """Records named metrics and derives timing from the host runtime.

    The memory-sampling timer is scheduled at construction when an event
    loop is running, otherwise by ``start()``.

    Args:
        logger: Logger for diagnostics and the default analytics sink.
        source: Host timing APIs; defaults to NullTelemetrySource.
        max_metrics: Capacity of the metric ring.
        environment: Environment name; analytics forwarding is active in
            ``production`` only.
        vital_sink: Receives raw vital samples (usually
            ``TelemetryManager.track_vital``).
        analytics_sink: Receives forwarded metric families.
        memory_sample_interval: Seconds between memory samples.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        source: PlatformTelemetrySource | None = None,
        max_metrics: int = DEFAULT_MAX_METRICS,
        environment: str | None = None,
        vital_sink: VitalSink | None = None,
        analytics_sink: AnalyticsSink | None = None,
        memory_sample_interval: float = MEMORY_SAMPLE_INTERVAL_SECONDS,
    ) -> None:
        self.logger = logger
        self.source: PlatformTelemetrySource = source or NullTelemetrySource()
        self.environment = environment or runtime_environment()
        self.vital_sink = vital_sink
        self._analytics_sink = analytics_sink or self._log_analytics
        self._metrics: RingBuffer[PerformanceMetric] = RingBuffer(max_metrics)
        self._components: dict[str, ComponentMetrics] = {}
        self._subscriptions: list[Subscription] = []
        self._cls_value = 0.0
        self._monitoring_vitals = False
        self._memory_timer = PeriodicTimer(
            memory_sample_interval, self.sample_memory, name="memory-sampling"
        )
        self._memory_timer.start()

    @property
    def memory_sampling_active(self) -> bool:
        return self._memory_timer.active

    def start(self, observe_vitals: bool = True) -> None:
        """Begin background sampling and host observation."""
        self._memory_timer.start()
        if observe_vitals:
            self.monitor_core_web_vitals()
        self._observe("longtask", self._on_long_task)

    # --- recording ---

    def record_metric(
        self,
        name: str,
        value: float,
        unit: MetricUnit | str = MetricUnit.MS,
        tags: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PerformanceMetric:
        metric = PerformanceMetric(
            name=name,
            value=value,
            unit=MetricUnit(unit),
            timestamp=epoch_ms(),
            tags=tags,
            metadata=metadata,
        )
        self._metrics.append(metric)
        if self.logger.is_enabled(LogLevel.DEBUG):
            self.logger.debug(
                f"Performance metric recorded: {name}",
                LogContext(
                    metadata={"value": value, "unit": str(metric.unit), "tags": tags, **(metadata or {})}
                ),
            )
        if self.environment == "production" and any(
            family in name for family in ANALYTICS_FAMILIES
        ):
            try:
                self._analytics_sink(metric)
            except Exception:
                _internal.warning("Analytics sink failed for %s", name, exc_info=True)
        return metric

    def _log_analytics(self, metric: PerformanceMetric) -> None:
        self.logger.info(
            "Performance metric",
            LogContext(
                metadata={
                    "name": metric.name,
                    "value": metric.value,
                    "unit": str(metric.unit),
                    "tags": metric.tags,
                }
            ),
        )

    def _record_duration(
        self, name: str, start: float, kind: str, tags: dict[str, str] | None
    ) -> None:
        self.record_metric(name, elapsed_ms(start), MetricUnit.MS, {"type": kind, **(tags or {})})

    @contextmanager
    def timed(self, name: str, tags: dict[str, str] | None = None) -> Iterator[None]:
        """Record the duration of the enclosed block as ``name``.

        An exception is recorded as ``<name>.error`` and re-raised.
        """
        start = time.perf_counter()
        try:
            yield
        except Exception:
            self._record_duration(f"{name}.error", start, "error", tags)
            raise
        self._record_duration(name, start, "sync", tags)

    def measure_function(
        self, fn: F, name: str | None = None, tags: dict[str, str] | None = None
    ) -> F:
        """Wrap ``fn`` so every call records ``function.<name>``.

        Awaitable results are timed until they settle. Failures record
        ``function.<name>.error`` and propagate unchanged.
        """
        metric = f"function.{name or getattr(fn, '__name__', None) or 'anonymous'}"

        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception:
                self._record_duration(f"{metric}.error", start, "error", tags)
                raise
            if inspect.isawaitable(result):
                return self._settle(result, metric, start, tags)
            self._record_duration(metric, start, "sync", tags)
            return result

        return wrapper  # type: ignore[return-value]

    async def _settle(
        self, awaitable: Awaitable[T], metric: str, start: float, tags: dict[str, str] | None
    ) -> T:
        try:
            value = await awaitable
        except Exception:
            self._record_duration(f"{metric}.error", start, "error", tags)
            raise
        self._record_duration(metric, start, "async", tags)
        return value

    async def measure_api_call(
        self, call: Callable[[], Awaitable[T]], endpoint: str, method: str = "GET"
    ) -> T:
        """Await ``call()`` and record ``api.call`` whatever the outcome."""
        start = time.perf_counter()
        try:
            result = await call()
        except Exception:
            self.record_metric(
                "api.call",
                elapsed_ms(start),
                MetricUnit.MS,
                {"endpoint": endpoint, "method": method, "status": "error"},
            )
            raise
        self.record_metric(
            "api.call",
            elapsed_ms(start),
            MetricUnit.MS,
            {"endpoint": endpoint, "method": method, "status": "success"},
        )
        return result

    def track_component(self, name: str, phase: ComponentPhase | str, duration: float) -> None:
        phase = ComponentPhase(phase)
        component = self._components.get(name)
        if component is None:
            component = ComponentMetrics(name=name, last_update=epoch_ms())
            self._components[name] = component
        match phase:
            case ComponentPhase.MOUNT:
                component.mount_time = duration
            case ComponentPhase.RENDER:
                component.render_time = duration
            case ComponentPhase.UPDATE:
                component.update_count += 1
                component.last_update = epoch_ms()
        self.record_metric(f"component.{phase}", duration, MetricUnit.MS, {"component": name})

    # --- marks ---

    def mark(self, name: str) -> None:
        try:
            self.source.mark(name)
        except Exception as exc:
            self.logger.error("Failed to set performance mark", exc, LogContext(metadata={"name": name}))

    def measure(self, name: str, start_mark: str, end_mark: str | None = None) -> float:
        """Milliseconds between two marks, recorded as metric ``name``.

        Returns 0 when the host cannot measure (e.g. an unknown mark).
        """
        try:
            duration = float(self.source.measure(name, start_mark, end_mark))
        except Exception as exc:
            self.logger.error(
                "Failed to measure performance",
                exc,
                LogContext(metadata={"name": name, "startMark": start_mark, "endMark": end_mark}),
            )
            return 0.0
        self.record_metric(name, duration, MetricUnit.MS)
        return duration

    # --- host extraction ---

    def _paint_time(self, name: str) -> float:
        for entry in self.source.entries_by_type("paint"):
            if entry.name == name:
                return entry.start_time
        return 0.0

    def _largest_contentful_paint(self) -> float:
        entries = self.source.entries_by_type("largest-contentful-paint")
        return entries[-1].start_time if entries else 0.0

    def _first_input_delay(self) -> float:
        entries = self.source.entries_by_type("first-input")
        if not entries:
            return 0.0
        first = entries[0]
        return float(first.detail.get("processingStart", first.start_time)) - first.start_time

    def _cumulative_layout_shift(self, entries: Sequence[PerformanceEntry] | None = None) -> float:
        if entries is None:
            entries = self.source.entries_by_type("layout-shift")
        return sum(
            float(entry.detail.get("value", 0.0))
            for entry in entries
            if not entry.detail.get("hadRecentInput", False)
        )

    def get_navigation_metrics(self) -> NavigationMetrics | None:
        try:
            timing = self.source.navigation_timing()
            if timing is None:
                return None
            secure_start = timing.get("secure_connection_start", 0)
            return NavigationMetrics(
                dns=timing["domain_lookup_end"] - timing["domain_lookup_start"],
                tcp=timing["connect_end"] - timing["connect_start"],
                ssl=timing["connect_end"] - secure_start if secure_start > 0 else 0.0,
                ttfb=timing["response_start"] - timing["request_start"],
                dom_content_loaded=timing["dom_content_loaded_event_end"]
                - timing["navigation_start"],
                load_complete=timing["load_event_end"] - timing["navigation_start"],
                first_paint=self._paint_time("first-paint"),
                first_contentful_paint=self._paint_time("first-contentful-paint"),
                largest_contentful_paint=self._largest_contentful_paint(),
                first_input_delay=self._first_input_delay(),
                cumulative_layout_shift=self._cumulative_layout_shift(),
            )
        except Exception:
            _internal.debug("Navigation timing unavailable", exc_info=True)
            return None

    def get_resource_metrics(self) -> list[ResourceMetrics]:
        try:
            entries = self.source.entries_by_type("resource")
        except Exception:
            _internal.debug("Resource timing unavailable", exc_info=True)
            return []
        return [
            ResourceMetrics(
                name=entry.name,
                type=str(entry.detail.get("initiatorType", "")),
                size=int(entry.detail.get("transferSize") or 0),
                duration=entry.duration,
                start_time=entry.start_time,
                end_time=entry.start_time + entry.duration,
            )
            for entry in entries
        ]

    def get_memory_metrics(self) -> MemoryMetrics | None:
        try:
            heap = self.source.heap_usage()
        except Exception:
            _internal.debug("Heap usage unavailable", exc_info=True)
            return None
        if heap is None:
            return None
        return MemoryMetrics(
            used_heap_size=heap.used,
            total_heap_size=heap.total,
            heap_size_limit=heap.limit,
            used_percentage=(heap.used / heap.limit) * 100 if heap.limit else 0.0,
        )

    def sample_memory(self) -> None:
        memory = self.get_memory_metrics()
        if memory is None:
            return
        self.record_metric("memory.used", memory.used_heap_size, MetricUnit.BYTES)
        self.record_metric("memory.usage-percentage", memory.used_percentage, MetricUnit.PERCENTAGE)

    # --- queries ---

    def get_metrics(self) -> list[PerformanceMetric]:
        return list(self._metrics)

    def get_component_metrics(self) -> list[ComponentMetrics]:
        return list(self._components.values())

    def get_performance_summary(self) -> PerformanceSummary:
        return PerformanceSummary(
            navigation=self.get_navigation_metrics(),
            memory=self.get_memory_metrics(),
            resources=self.get_resource_metrics(),
            components=self.get_component_metrics(),
            custom_metrics=self.get_metrics(),
        )

    def set_max_metrics(self, max_metrics: int) -> None:
        self._metrics.resize(max_metrics)

    def clear_metrics(self) -> None:
        self._metrics.clear()
        self._components.clear()
        self.logger.info("Performance metrics cleared")

    # --- observation ---

    def _observe(self, entry_type: str, handler: Callable[[Sequence[PerformanceEntry]], None]) -> None:
        try:
            subscription = self.source.observe(entry_type, handler)
        except Exception as exc:
            self.logger.error(f"Failed to observe {entry_type}", exc)
            return
        if subscription is not None:
            self._subscriptions.append(subscription)

    def monitor_core_web_vitals(self) -> None:
        """Subscribe to the host's paint, input and layout-shift streams."""
        if self._monitoring_vitals:
            return
        self._monitoring_vitals = True
        self._observe("largest-contentful-paint", self._on_largest_contentful_paint)
        self._observe("first-input", self._on_first_input)
        self._observe("layout-shift", self._on_layout_shift)
        self._observe("paint", self._on_paint)
        self._observe("navigation", self._on_navigation)

    def _forward_vital(self, name: VitalName, value: float) -> None:
        if self.vital_sink is None:
            return
        try:
            self.vital_sink(name, value)
        except Exception:
            _internal.warning("Vital sink failed for %s", name, exc_info=True)

    def _on_largest_contentful_paint(self, entries: Sequence[PerformanceEntry]) -> None:
        if not entries:
            return
        value = entries[-1].start_time
        self.record_metric("core-web-vitals.lcp", value, MetricUnit.MS)
        self._forward_vital(VitalName.LCP, value)

    def _on_first_input(self, entries: Sequence[PerformanceEntry]) -> None:
        if not entries:
            return
        first = entries[0]
        value = float(first.detail.get("processingStart", first.start_time)) - first.start_time
        self.record_metric("core-web-vitals.fid", value, MetricUnit.MS)
        self._forward_vital(VitalName.FID, value)

    def _on_layout_shift(self, entries: Sequence[PerformanceEntry]) -> None:
        # Layout shift is cumulative over the page lifetime.
        self._cls_value += self._cumulative_layout_shift(entries)
        self.record_metric("core-web-vitals.cls", self._cls_value, MetricUnit.COUNT)
        self._forward_vital(VitalName.CLS, self._cls_value)

    def _on_paint(self, entries: Sequence[PerformanceEntry]) -> None:
        for entry in entries:
            if entry.name == "first-contentful-paint":
                self.record_metric("core-web-vitals.fcp", entry.start_time, MetricUnit.MS)
                self._forward_vital(VitalName.FCP, entry.start_time)

    def _on_navigation(self, entries: Sequence[PerformanceEntry]) -> None:
        if not entries:
            return
        detail = entries[0].detail
        if "responseStart" in detail and "requestStart" in detail:
            ttfb = float(detail["responseStart"]) - float(detail["requestStart"])
            self.record_metric("core-web-vitals.ttfb", ttfb, MetricUnit.MS)
            self._forward_vital(VitalName.TTFB, ttfb)
        if "loadEventEnd" in detail and "fetchStart" in detail:
            total = float(detail["loadEventEnd"]) - float(detail["fetchStart"])
            self.record_metric("navigation.total", total, MetricUnit.MS)

    def _on_long_task(self, entries: Sequence[PerformanceEntry]) -> None:
        for entry in entries:
            self.record_metric(
                "long-task", entry.duration, MetricUnit.MS, {"startTime": str(entry.start_time)}
            )

    # --- lifecycle ---

    def cleanup(self) -> None:
        """Cancel the memory-sampling timer. Idempotent."""
        self._memory_timer.stop()

    def destroy(self) -> None:
        """Disconnect all observers, stop timers and clear state. Idempotent."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                subscription.disconnect()
            except Exception:
                _internal.warning("Failed to disconnect observer", exc_info=True)
        self._monitoring_vitals = False
        self._cls_value = 0.0
        self.cleanup()
        self.clear_metrics()
        self.logger.info("Performance monitor destroyed")
