"""Telemetry orchestration: identity, sampling, buffering and flushing."""

import asyncio
import logging
import random
import re
import traceback
import uuid
from collections.abc import Callable, Coroutine, Mapping
from functools import wraps
from typing import Any, TypeVar

import httpx

from telemetripy.adapters.hooks import GlobalErrorHooks
from telemetripy.adapters.platform import NullTelemetrySource
from telemetripy.adapters.storage.in_memory import InMemoryKeyValueStore
from telemetripy.adapters.transport import HttpCollector
from telemetripy.core.config import MonitoringConfig, TrackingFeature
from telemetripy.core.logs import epoch_ms
from telemetripy.core.models import (
    APIMetric,
    ErrorInfo,
    LogContext,
    LogLevel,
    MetricUnit,
    PerformanceMetric,
    SessionSnapshot,
    UserAction,
    VitalMetric,
    VitalName,
)
from telemetripy.core.persistence import MAX_STORED_SESSIONS, MONITORING_KEY, CappedJsonList
from telemetripy.core.ports import KeyValueStorePort, PlatformTelemetrySource
from telemetripy.core.ring_buffer import RingBuffer
from telemetripy.core.timer import PeriodicTimer
from telemetripy.core.vitals import classify
from telemetripy.logger import StructuredLogger
from telemetripy.recorder import MetricRecorder

_internal = logging.getLogger(__name__)

M = TypeVar("M", bound=Callable[..., Any])


def _absorb(method: M) -> M:
    """Log and swallow any exception raised by a public manager method."""

    @wraps(method)
    def wrapper(self: "TelemetryManager", *args: Any, **kwargs: Any) -> Any:
        try:
            return method(self, *args, **kwargs)
        except Exception:
            _internal.warning("TelemetryManager.%s failed", method.__name__, exc_info=True)
            return None

    return wrapper  # type: ignore[return-value]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def generate_session_id() -> str:
    """Return ``<epoch ms>-<9 random hex chars>``."""
    return f"{epoch_ms()}-{uuid.uuid4().hex[:9]}"


class TelemetryManager:
    """Buffers telemetry events and ships them to a collector.

    Five bounded rings (errors, metrics, actions, API calls, vitals) are
    fed by the ``track_*`` methods after the feature gate and sampling
    check. A periodic flush posts a snapshot of all rings to the collector
    and falls back to the local key-value store when delivery is not
    possible. No public method raises.

    Lifecycle: construct, ``start()`` inside the running event loop, and
    ``await shutdown()`` (or ``destroy()``) at exit.

    Args:
        config: Monitoring settings.
        logger: Logger for diagnostics; built from the config if omitted.
        store: Fallback key-value store; in-memory if omitted.
        source: Host timing APIs; NullTelemetrySource if omitted.
        http_client: Shared client for collector requests.
        recorder: Metric recorder; built and owned by the manager if
            omitted.
        rng: Random source for sampling.
    """

    def __init__(
        self,
        config: MonitoringConfig | None = None,
        *,
        logger: StructuredLogger | None = None,
        store: KeyValueStorePort | None = None,
        source: PlatformTelemetrySource | None = None,
        http_client: httpx.AsyncClient | None = None,
        recorder: MetricRecorder | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or MonitoringConfig()
        self.logger = logger or StructuredLogger(environment=self.config.environment)
        self.source: PlatformTelemetrySource = source or NullTelemetrySource()
        self.store: KeyValueStorePort = store or InMemoryKeyValueStore()
        self._fallback = CappedJsonList(self.store, MONITORING_KEY, MAX_STORED_SESSIONS)
        self._rng = rng or random.Random()
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._collector: HttpCollector | None = None

        self.session_id = generate_session_id()
        self._user_id: str | None = None

        self._errors: RingBuffer[ErrorInfo] = RingBuffer(self.config.max_errors)
        self._metrics: RingBuffer[PerformanceMetric] = RingBuffer(self.config.max_metrics)
        self._actions: RingBuffer[UserAction] = RingBuffer(self.config.max_actions)
        self._api_metrics: RingBuffer[APIMetric] = RingBuffer(self.config.max_api_metrics)
        self._vitals: RingBuffer[VitalMetric] = RingBuffer(self.config.max_vitals)
        self._critical_patterns = self._compile_patterns(self.config.critical_error_patterns)

        self._owns_recorder = recorder is None
        self.recorder = recorder or MetricRecorder(
            self.logger,
            self.source,
            max_metrics=self.config.max_metrics,
            environment=self.config.environment,
            vital_sink=self.track_vital,
        )
        self._flush_timer = PeriodicTimer(
            self.config.flush_interval_ms / 1000, self._spawn_flush, name="telemetry-flush"
        )
        self._hooks = GlobalErrorHooks(self._on_uncaught_error)
        self._pending: set[asyncio.Task[None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._flushing = False
        self._started = False
        self._destroyed = False

    # --- identity ---

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def flushing(self) -> bool:
        return self._flushing

    @property
    def flush_timer_active(self) -> bool:
        return self._flush_timer.active

    @_absorb
    def set_user_id(self, user_id: str) -> None:
        """Identify the user for events recorded from now on.

        The id can be set once per session; a different second value is
        ignored with a warning.
        """
        if self._user_id is not None and self._user_id != user_id:
            self.logger.warn(
                "User ID already set for this session; ignoring new value",
                LogContext(user_id=self._user_id, session_id=self.session_id),
            )
            return
        self._user_id = user_id
        self.logger.info(
            "User ID set for monitoring",
            LogContext(user_id=user_id, session_id=self.session_id),
        )

    # --- gating ---

    def _should_sample(self) -> bool:
        return self._rng.random() < self.config.sample_rate

    def _accepts(self, feature: TrackingFeature) -> bool:
        return self.config.is_enabled(feature) and self._should_sample()

    def _context(self, **metadata: Any) -> LogContext:
        return LogContext(user_id=self._user_id, session_id=self.session_id, metadata=metadata)

    def _log_tracked(self, level: LogLevel, message: str, record: Any) -> None:
        if self.logger.is_enabled(level):
            self.logger.log(level, message, self._context(**record.to_dict()))

    # --- recording ---

    @_absorb
    def track_error(self, error: BaseException | str, info: Mapping[str, Any] | None = None) -> None:
        """Record a runtime error.

        Malformed input is accepted: a plain string is treated as the
        message and a missing traceback leaves ``stack`` empty. Errors that
        look critical are flushed right away.

        Args:
            error: The exception (or message).
            info: Extra fields; ``component_stack`` and ``error_boundary``
                are copied onto the record.
        """
        if not self._accepts(TrackingFeature.ERRORS):
            return
        info = info or {}
        if isinstance(error, BaseException):
            message = str(error)
            name = type(error).__name__
            stack = None
            if error.__traceback__ is not None:
                stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            message, name, stack = str(error), "", None

        error_info = ErrorInfo(
            message=message,
            stack=stack,
            component_stack=info.get("component_stack"),
            error_boundary=info.get("error_boundary"),
            url=self.source.current_url(),
            user_agent=self.source.user_agent(),
            timestamp=epoch_ms(),
            user_id=self._user_id,
            session_id=self.session_id,
            build_version=self.config.build_version,
            environment=self.config.environment,
        )
        self._errors.append(error_info)
        self._log_tracked(LogLevel.ERROR, "Error tracked", error_info)

        if self.is_critical_error(message, name):
            self._schedule_flush()

    def is_critical_error(self, message: str, name: str = "") -> bool:
        candidates = (message, f"{name}: {message}" if name else message)
        return any(
            pattern.search(text) for pattern in self._critical_patterns for text in candidates
        )

    @_absorb
    def track_metric(self, name: str, value: float, unit: MetricUnit | str = MetricUnit.MS) -> None:
        if not self._accepts(TrackingFeature.PERFORMANCE):
            return
        metric = PerformanceMetric(
            name=name,
            value=value,
            unit=MetricUnit(unit),
            timestamp=epoch_ms(),
            url=self.source.current_url(),
            session_id=self.session_id,
            user_id=self._user_id,
        )
        self._metrics.append(metric)
        self._log_tracked(LogLevel.DEBUG, "Metric tracked", metric)

    @_absorb
    def track_user_action(
        self,
        action: str,
        element: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if not self._accepts(TrackingFeature.USER):
            return
        user_action = UserAction(
            action=action,
            element=element,
            url=self.source.current_url(),
            timestamp=epoch_ms(),
            user_id=self._user_id,
            session_id=self.session_id,
            metadata=metadata,
        )
        self._actions.append(user_action)
        self._log_tracked(LogLevel.DEBUG, "User action tracked", user_action)

    @_absorb
    def track_api_call(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration: float,
        error: str | None = None,
    ) -> None:
        if not self._accepts(TrackingFeature.PERFORMANCE):
            return
        api_metric = APIMetric(
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            duration=duration,
            timestamp=epoch_ms(),
            user_id=self._user_id,
            session_id=self.session_id,
            error=error,
        )
        self._api_metrics.append(api_metric)
        self._log_tracked(LogLevel.DEBUG, "API call tracked", api_metric)

    @_absorb
    def track_vital(self, name: VitalName | str, value: float) -> None:
        if not self._accepts(TrackingFeature.VITALS):
            return
        vital_name = VitalName(name)
        vital = VitalMetric(
            name=vital_name,
            value=value,
            rating=classify(vital_name, value),
            timestamp=epoch_ms(),
            url=self.source.current_url(),
            session_id=self.session_id,
        )
        self._vitals.append(vital)
        self._log_tracked(LogLevel.INFO, "Web Vital tracked", vital)

    # --- snapshot ---

    def get_session_data(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            user_id=self._user_id,
            errors=self._errors.snapshot(),
            metrics=self._metrics.snapshot(),
            actions=self._actions.snapshot(),
            api_metrics=self._api_metrics.snapshot(),
            vitals=self._vitals.snapshot(),
        )

    def get_errors(self) -> list[ErrorInfo]:
        return list(self._errors)

    def get_metrics(self) -> list[PerformanceMetric]:
        return list(self._metrics)

    def get_actions(self) -> list[UserAction]:
        return list(self._actions)

    def get_api_metrics(self) -> list[APIMetric]:
        return list(self._api_metrics)

    def get_vitals(self) -> list[VitalMetric]:
        return list(self._vitals)

    def _discard(self, snapshot: SessionSnapshot) -> None:
        self._errors.discard(snapshot.errors)
        self._metrics.discard(snapshot.metrics)
        self._actions.discard(snapshot.actions)
        self._api_metrics.discard(snapshot.api_metrics)
        self._vitals.discard(snapshot.vitals)

    def _clear_data(self) -> None:
        for ring in (self._errors, self._metrics, self._actions, self._api_metrics, self._vitals):
            ring.clear()

    # --- flushing ---

    def _get_collector(self) -> HttpCollector | None:
        if not self.config.has_collector:
            return None
        if self._collector is None:
            if self._http_client is None:
                self._http_client = httpx.AsyncClient()
            self._collector = HttpCollector(
                self.config.api_endpoint or "",
                self.config.api_key or "",
                timeout=self.config.request_timeout_ms / 1000,
                client=self._http_client,
            )
        return self._collector

    async def flush(self) -> None:
        """Ship the current snapshot, or persist it locally.

        Does nothing when every buffer is empty or another flush is in
        flight. Events recorded while the request is pending stay
        buffered for the next flush.
        """
        if self._flushing:
            self.logger.debug("Flush already in progress; skipping")
            return
        snapshot = self.get_session_data()
        if not snapshot.has_data():
            return

        self._flushing = True
        try:
            collector = self._get_collector()
            if collector is None:
                await self._store_locally(snapshot)
                return
            try:
                await collector.send(snapshot.to_dict())
            except Exception as exc:
                self.logger.error("Failed to flush monitoring data", exc)
                await self._store_locally(snapshot)
                return
            self._discard(snapshot)
            self.logger.debug("Monitoring data flushed successfully")
        except Exception:
            _internal.warning("Flush failed unexpectedly", exc_info=True)
        finally:
            self._flushing = False

    async def _store_locally(self, snapshot: SessionSnapshot) -> None:
        try:
            await self._fallback.append(snapshot.to_dict())
        except Exception as exc:
            self.logger.error("Failed to store monitoring data locally", exc)
            return
        self._discard(snapshot)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _owner_loop(self) -> asyncio.AbstractEventLoop | None:
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            return None
        return loop

    def _schedule_flush(self) -> None:
        """Flush outside the timer cycle.

        The flush always runs on the loop the manager was started on; a
        call from another thread is handed over to it. Without a running
        loop the flush runs to completion before returning.
        """
        owner = self._owner_loop()
        running = _running_loop()
        if owner is not None and owner is not running:
            owner.call_soon_threadsafe(self._spawn_flush)
        elif running is not None:
            self._spawn_flush()
        else:
            asyncio.run(self.flush())

    def _spawn_flush(self) -> None:
        # Stopping the timer never cancels a flush in flight.
        self._spawn(self.flush())

    async def drain(self) -> None:
        """Wait for every scheduled flush to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- fallback inspection ---

    async def get_stored_monitoring_data(self) -> list[dict[str, Any]]:
        """Sessions persisted by the local fallback, oldest first."""
        try:
            return await self._fallback.read()
        except Exception:
            _internal.warning("Failed to read stored monitoring data", exc_info=True)
            return []

    async def clear_stored_monitoring_data(self) -> None:
        try:
            await self._fallback.clear()
        except Exception as exc:
            self.logger.error("Failed to clear stored monitoring data", exc)

    # --- configuration and lifecycle ---

    @staticmethod
    def _compile_patterns(patterns: tuple[str, ...]) -> list[re.Pattern[str]]:
        return [re.compile(pattern) for pattern in patterns]

    @_absorb
    def update_config(self, **changes: Any) -> None:
        """Merge ``changes`` into the config.

        Invalid changes are logged and the previous config is kept. A new
        ``flush_interval_ms`` restarts a running flush timer.
        """
        try:
            config = self.config.merged(**changes)
            patterns = self._compile_patterns(config.critical_error_patterns)
        except (TypeError, ValueError, re.error) as exc:
            self.logger.error("Invalid monitoring configuration", exc, LogContext(metadata=changes))
            return
        previous, self.config = self.config, config
        self._critical_patterns = patterns

        self._errors.resize(config.max_errors)
        self._metrics.resize(config.max_metrics)
        self._actions.resize(config.max_actions)
        self._api_metrics.resize(config.max_api_metrics)
        self._vitals.resize(config.max_vitals)
        if self._owns_recorder:
            self.recorder.set_max_metrics(config.max_metrics)

        if (
            config.api_endpoint != previous.api_endpoint
            or config.api_key != previous.api_key
            or config.request_timeout_ms != previous.request_timeout_ms
        ):
            self._collector = None

        if (
            config.flush_interval_ms != previous.flush_interval_ms
            and self._started
            and not self._destroyed
        ):
            self._flush_timer.restart(config.flush_interval_ms / 1000)

    @_absorb
    def start(self) -> None:
        """Install error hooks, begin observation and start the flush timer.

        Call from inside the running event loop; without one, the timer and
        the loop exception hook are skipped.
        """
        if self._destroyed:
            self.logger.warn("Cannot start a destroyed telemetry manager")
            return
        if self._started:
            return
        self._loop = _running_loop()
        self._hooks.install()
        self.recorder.start(observe_vitals=self.config.enable_vitals_tracking)
        if not self._flush_timer.start():
            self.logger.debug("No running event loop; periodic flush disabled")
        self._started = True

    def _on_uncaught_error(self, error: BaseException, info: dict[str, Any] | None) -> None:
        # Rings are only touched from the manager's loop.
        owner = self._owner_loop()
        if owner is not None and owner is not _running_loop():
            owner.call_soon_threadsafe(self.track_error, error, info)
            return
        self.track_error(error, info)

    @_absorb
    def destroy(self) -> None:
        """Stop timers, detach hooks and clear buffers. Idempotent.

        A flush already in flight is allowed to finish.
        """
        self._destroyed = True
        self._started = False
        self._flush_timer.stop()
        self._hooks.uninstall()
        if self._owns_recorder:
            self.recorder.destroy()
        self._clear_data()

    async def shutdown(self) -> None:
        """Finish pending flushes, flush what is left, then destroy."""
        try:
            await self.drain()
            if not self._destroyed:
                await self.flush()
            self.destroy()
            await self.drain()
            if self._owns_http_client and self._http_client is not None:
                await self._http_client.aclose()
                self._http_client = None
                self._collector = None
        except Exception:
            _internal.warning("Telemetry shutdown failed", exc_info=True)
