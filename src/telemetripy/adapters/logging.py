"""Python logging adapters for the structured logger.

StructuredLogger builds a LogEntry and hands it to a dedicated stdlib
logger as ``record.telemetry_entry``. The formatters below render that
entry for humans or machines, and AuditTrailHandler mirrors it into the
local key-value store.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any

from telemetripy.core.encoding.ndjson import dumps, encode_entry
from telemetripy.core.models import ErrorDetails, LogContext, LogEntry, LogLevel
from telemetripy.core.persistence import CappedJsonList

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

ENTRY_ATTR = "telemetry_entry"

STDLIB_LEVELS: dict[LogLevel, int] = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.TRACE: TRACE,
}

_internal = logging.getLogger(__name__)


def _level_from_stdlib(levelno: int) -> LogLevel:
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARN
    if levelno >= logging.INFO:
        return LogLevel.INFO
    if levelno >= logging.DEBUG:
        return LogLevel.DEBUG
    return LogLevel.TRACE


def record_to_entry(record: logging.LogRecord) -> LogEntry:
    """Return the LogEntry carried by ``record``, or build one from it.

    Records emitted by StructuredLogger carry their entry. Foreign records
    (when the handler is attached to another logger) are converted, keeping
    their origin and exception info.
    """
    entry = getattr(record, ENTRY_ATTR, None)
    if isinstance(entry, LogEntry):
        return entry

    error = None
    if record.exc_info:
        exc_type, exc_value, exc_tb = record.exc_info
        if exc_type is not None:
            error = ErrorDetails(
                name=exc_type.__name__,
                message=str(exc_value) if exc_value is not None else "",
                stack="".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
            )
    metadata: dict[str, Any] = {
        "module": record.name,
        "funcName": record.funcName or "",
        "lineno": record.lineno,
    }
    return LogEntry(
        level=_level_from_stdlib(record.levelno),
        message=record.getMessage(),
        timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        context=LogContext(metadata=metadata),
        error=error,
    )


class HumanFormatter(logging.Formatter):
    """Single-line, level-tagged text with inlined JSON context.

    Example:
        ``[2024-01-01T00:00:00+00:00] WARN: Slow response ({"action":"api"})``
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = record_to_entry(record)
        line = f"[{entry.timestamp}] {entry.level.name}: {entry.message}"
        if entry.context is not None:
            line += f" ({dumps(entry.context.to_dict())})"
        if entry.error is not None:
            line += f" | {entry.error.name}: {entry.error.message}"
            if entry.error.stack:
                line += "\n" + entry.error.stack.rstrip()
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per entry."""

    def format(self, record: logging.LogRecord) -> str:
        return encode_entry(record_to_entry(record))


class AuditTrailHandler(logging.Handler):
    """Logging handler that mirrors entries into a capped stored list.

    Example:
        ```python
        store = SQLiteKeyValueStore("telemetry.db")
        trail = CappedJsonList(store, LOGS_KEY, MAX_STORED_LOGS)
        logging.getLogger("app").addHandler(AuditTrailHandler(trail))
        ```
    """

    def __init__(self, trail: CappedJsonList, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._trail = trail

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._trail.append_sync(record_to_entry(record).to_dict())
        except Exception:
            # Storage is best-effort; report on our own logger and move on.
            _internal.warning("Failed to store log entry in audit trail", exc_info=True)
