"""Recording API for application code.

Call ``init_telemetry()`` once at startup (inside the event loop when
periodic flushing is wanted) and ``await shutdown_telemetry()`` at exit.
Every recording function is a no-op until ``init_telemetry()`` has run.

Example:
    ```python
    from telemetripy import api

    async def main() -> None:
        api.init_telemetry(api_endpoint="https://collector.example.com", api_key="...")
        api.track_page_view("/packages", "Packages")
        await api.shutdown_telemetry()
    ```
"""

import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from telemetripy.adapters.storage.in_memory import InMemoryKeyValueStore
from telemetripy.core.config import MonitoringConfig
from telemetripy.core.logs import elapsed_ms
from telemetripy.core.models import LogContext
from telemetripy.core.ports import KeyValueStorePort, PlatformTelemetrySource
from telemetripy.logger import SecuritySeverity, StructuredLogger
from telemetripy.manager import TelemetryManager

T = TypeVar("T")


@dataclass
class TelemetryContext:
    """Instances owned by an initialized telemetry session."""

    logger: StructuredLogger
    manager: TelemetryManager
    store: KeyValueStorePort


_current: TelemetryContext | None = None


def init_telemetry(
    config: MonitoringConfig | None = None,
    *,
    store: KeyValueStorePort | None = None,
    source: PlatformTelemetrySource | None = None,
    http_client: httpx.AsyncClient | None = None,
    logger: StructuredLogger | None = None,
    **changes: Any,
) -> TelemetryContext:
    """Build and start the telemetry instances.

    Calling it again while initialized returns the existing context.

    Args:
        config: Base configuration; ``MonitoringConfig.from_env()`` if
            omitted.
        store: Fallback and audit-trail storage (in-memory by default).
        source: Host timing APIs.
        http_client: Shared client for collector requests.
        logger: Logger to use instead of one built from the config.
        **changes: Config fields applied on top of ``config``.
    """
    global _current
    if _current is not None:
        return _current
    base = config or MonitoringConfig.from_env()
    if changes:
        base = base.merged(**changes)
    store = store or InMemoryKeyValueStore()
    logger = logger or StructuredLogger(environment=base.environment, audit_store=store)
    manager = TelemetryManager(
        base,
        logger=logger,
        store=store,
        source=source,
        http_client=http_client,
    )
    manager.start()
    _current = TelemetryContext(logger=logger, manager=manager, store=store)
    logger.info("Telemetry initialized", LogContext(session_id=manager.session_id))
    return _current


async def shutdown_telemetry() -> None:
    """Flush what is buffered and release the telemetry instances."""
    global _current
    context, _current = _current, None
    if context is None:
        return
    await context.manager.shutdown()
    context.logger.close()


def get_telemetry() -> TelemetryContext | None:
    return _current


def initialize_monitoring(**changes: Any) -> None:
    """Apply configuration changes to the running manager."""
    if _current is None:
        return
    _current.manager.update_config(**changes)
    _current.logger.info("Monitoring initialized", LogContext(metadata=changes))


# --- logging ---


def log_error(
    message: str, error: BaseException | None = None, context: LogContext | None = None
) -> None:
    if _current is not None:
        _current.logger.error(message, error, context)


def log_warning(message: str, context: LogContext | None = None) -> None:
    if _current is not None:
        _current.logger.warn(message, context)


def log_info(message: str, context: LogContext | None = None) -> None:
    if _current is not None:
        _current.logger.info(message, context)


def log_debug(message: str, context: LogContext | None = None) -> None:
    if _current is not None:
        _current.logger.debug(message, context)


def log_api_call(method: str, url: str, context: LogContext | None = None) -> None:
    if _current is not None:
        _current.logger.api_request(method, url, context)


def log_user_action(action: str, context: LogContext | None = None) -> None:
    if _current is not None:
        _current.logger.user_action(action, context)


def log_security_event(
    event: str, severity: SecuritySeverity, context: LogContext | None = None
) -> None:
    if _current is not None:
        _current.logger.security_event(event, severity, context)


# --- tracking ---


def track_page_view(url: str, title: str | None = None) -> None:
    if _current is not None:
        _current.manager.track_user_action("page_view", None, {"url": url, "title": title})


def track_button_click(button_text: str, metadata: dict[str, Any] | None = None) -> None:
    if _current is not None:
        _current.manager.track_user_action("button_click", button_text, metadata)


def track_form_submission(form_name: str, success: bool) -> None:
    if _current is not None:
        _current.manager.track_user_action("form_submit", form_name, {"success": success})


def track_search(query: str, results: int) -> None:
    if _current is not None:
        _current.manager.track_user_action("search", None, {"query": query, "results": results})


def measure_execution(name: str, fn: Callable[[], T | Awaitable[T]]) -> T | Awaitable[T]:
    """Call ``fn`` and record its duration as metric ``name``.

    An awaitable result is timed until it settles. A failure is recorded as
    a tracked error as well, then re-raised.
    """
    start = time.perf_counter()
    try:
        result = fn()
    except Exception as exc:
        _record_execution(name, start, exc)
        raise
    if inspect.isawaitable(result):
        return _settle_execution(name, start, result)
    _record_execution(name, start)
    return result


async def _settle_execution(name: str, start: float, awaitable: Awaitable[T]) -> T:
    try:
        value = await awaitable
    except Exception as exc:
        _record_execution(name, start, exc)
        raise
    _record_execution(name, start)
    return value


def _record_execution(name: str, start: float, error: BaseException | None = None) -> None:
    if _current is None:
        return
    _current.manager.track_metric(name, elapsed_ms(start))
    if error is not None:
        _current.manager.track_error(error)


# --- fallback storage ---


async def get_stored_monitoring_data() -> list[dict[str, Any]]:
    if _current is None:
        return []
    return await _current.manager.get_stored_monitoring_data()


async def clear_stored_monitoring_data() -> None:
    if _current is not None:
        await _current.manager.clear_stored_monitoring_data()
