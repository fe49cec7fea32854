"""Level-filtered structured logger with a bounded local audit trail."""

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Literal, TextIO

from telemetripy.adapters.logging import (
    ENTRY_ATTR,
    STDLIB_LEVELS,
    TRACE,
    AuditTrailHandler,
    HumanFormatter,
    JsonFormatter,
)
from telemetripy.core.config import default_log_level, runtime_environment
from telemetripy.core.logs import elapsed_ms, make_entry
from telemetripy.core.models import LogContext, LogLevel
from telemetripy.core.persistence import LOGS_KEY, MAX_STORED_LOGS, CappedJsonList
from telemetripy.core.ports import KeyValueStorePort

_internal = logging.getLogger(__name__)

SecuritySeverity = Literal["low", "medium", "high", "critical"]


def _with(context: LogContext | None, **fields: Any) -> LogContext:
    """Merge ``fields`` into ``context``; ``metadata`` is merged key-wise."""
    base = context or LogContext()
    metadata = fields.pop("metadata", None)
    if metadata is not None:
        fields["metadata"] = {**(base.metadata or {}), **metadata}
    return base.merge(**fields)


class StructuredLogger:
    """Leveled logger rendering LogEntry objects through stdlib logging.

    Development output is human-readable text; any other environment emits
    one JSON object per entry and, when ``audit_store`` is given (no server
    sink available), mirrors every entry into a 100-entry audit trail.

    No method raises: sink failures are reported on this module's own
    stdlib logger.

    Args:
        environment: Environment name; defaults to ``TELEMETRY_ENV``.
        level: Minimum level; defaults to DEBUG in development, INFO
            otherwise, overridable by ``TELEMETRY_LOG_LEVEL``.
        audit_store: Key-value store for the local audit trail.
        stream: Console stream (default ``sys.stderr``).
        name: Name of the underlying stdlib logger.
    """

    def __init__(
        self,
        environment: str | None = None,
        level: LogLevel | None = None,
        audit_store: KeyValueStorePort | None = None,
        stream: TextIO | None = None,
        name: str = "telemetripy",
    ) -> None:
        self.environment = environment or runtime_environment()
        self.is_development = self.environment == "development"
        self._level = level if level is not None else default_log_level(self.environment)
        self._timers: dict[str, float] = {}
        self._trail = (
            CappedJsonList(audit_store, LOGS_KEY, MAX_STORED_LOGS)
            if audit_store is not None
            else None
        )

        # Unregistered logger: no global state, no propagation to root.
        self._logger = logging.Logger(name, level=TRACE)
        console = logging.StreamHandler(stream or sys.stderr)
        console.setFormatter(HumanFormatter() if self.is_development else JsonFormatter())
        self._logger.addHandler(console)
        if self._trail is not None and not self.is_development:
            self._logger.addHandler(AuditTrailHandler(self._trail))

    @property
    def level(self) -> LogLevel:
        return self._level

    def is_enabled(self, level: LogLevel) -> bool:
        return level <= self._level

    def log(
        self,
        level: LogLevel,
        message: str,
        context: LogContext | None = None,
        error: BaseException | None = None,
    ) -> None:
        if not self.is_enabled(level):
            return
        try:
            entry = make_entry(level, message, context, error, include_stack=self.is_development)
            self._logger.log(STDLIB_LEVELS[level], entry.message, extra={ENTRY_ATTR: entry})
        except Exception:
            _internal.warning("Failed to emit log entry", exc_info=True)

    def error(
        self,
        message: str,
        error: BaseException | None = None,
        context: LogContext | None = None,
    ) -> None:
        self.log(LogLevel.ERROR, message, context, error)

    def warn(self, message: str, context: LogContext | None = None) -> None:
        self.log(LogLevel.WARN, message, context)

    def info(self, message: str, context: LogContext | None = None) -> None:
        self.log(LogLevel.INFO, message, context)

    def debug(self, message: str, context: LogContext | None = None) -> None:
        self.log(LogLevel.DEBUG, message, context)

    def trace(self, message: str, context: LogContext | None = None) -> None:
        self.log(LogLevel.TRACE, message, context)

    # Performance logging

    def time(self, label: str, context: LogContext | None = None) -> None:
        self._timers[label] = time.perf_counter()
        if self.is_enabled(LogLevel.DEBUG):
            self.debug(f"Timer started: {label}", context)

    def time_end(self, label: str, context: LogContext | None = None) -> None:
        start = self._timers.pop(label, None)
        if not self.is_enabled(LogLevel.DEBUG):
            return
        if start is None:
            self.debug(f"Timer ended: {label}", context)
            return
        duration = elapsed_ms(start)
        self.debug(
            f"Timer ended: {label} ({duration:.2f}ms)",
            _with(context, metadata={"duration": duration}),
        )

    @contextmanager
    def measure_performance(
        self, label: str, context: LogContext | None = None
    ) -> Iterator[None]:
        """Time the enclosed block.

        Logs the elapsed milliseconds at DEBUG on success. On an exception
        logs an ERROR with the elapsed time and re-raises it unchanged.

        Example:
            ```python
            with logger.measure_performance("load_packages"):
                packages = await repository.load()
            ```
        """
        start = time.perf_counter()
        self.time(label, context)
        try:
            yield
        except Exception as exc:
            self._timers.pop(label, None)
            self.error(f"Function {label} failed after {elapsed_ms(start):.2f}ms", exc, context)
            raise
        duration = elapsed_ms(start)
        self.time_end(label, context)
        if self.is_enabled(LogLevel.DEBUG):
            self.debug(f"Function {label} completed in {duration:.2f}ms", context)

    # Domain helpers

    def api_request(self, method: str, url: str, context: LogContext | None = None) -> None:
        if not self.is_enabled(LogLevel.INFO):
            return
        self.info(
            f"API Request: {method} {url}",
            _with(context, action="api_request", metadata={"method": method, "url": url}),
        )

    def api_response(
        self,
        method: str,
        url: str,
        status: int,
        duration: float | None = None,
        context: LogContext | None = None,
    ) -> None:
        level = LogLevel.ERROR if status >= 400 else LogLevel.INFO
        if not self.is_enabled(level):
            return
        suffix = f" ({duration}ms)" if duration is not None else ""
        self.log(
            level,
            f"API Response: {method} {url} - {status}{suffix}",
            _with(
                context,
                action="api_response",
                metadata={"method": method, "url": url, "status": status, "duration": duration},
            ),
        )

    def user_action(self, action: str, context: LogContext | None = None) -> None:
        if not self.is_enabled(LogLevel.INFO):
            return
        self.info(
            f"User Action: {action}",
            _with(context, action="user_action", metadata={"action": action}),
        )

    def component_mount(self, component: str, context: LogContext | None = None) -> None:
        if not self.is_enabled(LogLevel.DEBUG):
            return
        self.debug(
            f"Component Mounted: {component}",
            _with(context, component=component, action="mount"),
        )

    def component_unmount(self, component: str, context: LogContext | None = None) -> None:
        if not self.is_enabled(LogLevel.DEBUG):
            return
        self.debug(
            f"Component Unmounted: {component}",
            _with(context, component=component, action="unmount"),
        )

    def security_event(
        self,
        event: str,
        severity: SecuritySeverity,
        context: LogContext | None = None,
    ) -> None:
        level = LogLevel.ERROR if severity in ("high", "critical") else LogLevel.WARN
        if not self.is_enabled(level):
            return
        self.log(
            level,
            f"Security Event: {event} ({severity})",
            _with(
                context,
                action="security_event",
                metadata={"event": event, "severity": severity},
            ),
        )

    def db_operation(
        self,
        operation: str,
        table: str | None = None,
        duration: float | None = None,
        context: LogContext | None = None,
    ) -> None:
        if not self.is_enabled(LogLevel.DEBUG):
            return
        message = f"DB Operation: {operation}"
        if table:
            message += f" on {table}"
        if duration is not None:
            message += f" ({duration}ms)"
        self.debug(
            message,
            _with(
                context,
                action="db_operation",
                metadata={"operation": operation, "table": table, "duration": duration},
            ),
        )

    def api_data(self, operation: str, data: Any = None, context: LogContext | None = None) -> None:
        if not self.is_enabled(LogLevel.DEBUG):
            return
        self.debug(
            f"API Data: {operation}",
            _with(context, action="api_data", metadata={"operation": operation, "data": data}),
        )

    # Audit trail

    def get_stored_logs(self) -> list[dict[str, Any]]:
        """Entries mirrored into the audit trail, oldest first."""
        if self._trail is None:
            return []
        try:
            return self._trail.read_sync()
        except Exception:
            _internal.warning("Failed to read audit trail", exc_info=True)
            return []

    def clear_stored_logs(self) -> None:
        if self._trail is None:
            return
        try:
            self._trail.clear_sync()
        except Exception:
            _internal.warning("Failed to clear audit trail", exc_info=True)

    def set_log_level(self, level: LogLevel) -> None:
        self._level = level
        self.info(f"Log level changed to {level.name}")

    def close(self) -> None:
        """Flush and detach all handlers."""
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            try:
                handler.flush()
                handler.close()
            except Exception:
                _internal.warning("Failed to close log handler", exc_info=True)
