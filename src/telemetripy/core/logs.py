"""Helpers for creating LogEntry objects."""

import time
import traceback
from datetime import datetime, timezone

from telemetripy.core.models import ErrorDetails, LogContext, LogEntry, LogLevel
from telemetripy.core.redaction import redact


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def epoch_ms() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


def elapsed_ms(start: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - start) * 1000


def error_details(error: BaseException, include_stack: bool = False) -> ErrorDetails:
    """Summarize an exception.

    Args:
        error: The exception.
        include_stack: Attach the formatted traceback.
    """
    stack = None
    if include_stack:
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return ErrorDetails(name=type(error).__name__, message=str(error), stack=stack)


def make_entry(
    level: LogLevel,
    message: str,
    context: LogContext | None = None,
    error: BaseException | None = None,
    include_stack: bool = False,
) -> LogEntry:
    """Create a log entry with automatic timestamp and redacted metadata.

    Args:
        level: Entry severity.
        message: The log message.
        context: Optional descriptive context.
        error: Optional exception to summarize.
        include_stack: Attach the exception traceback.

    Returns:
        LogEntry with current timestamp
    """
    if context is not None and context.metadata:
        context = context.merge(metadata=redact(context.metadata))
    return LogEntry(
        level=level,
        message=message,
        timestamp=utc_timestamp(),
        context=context,
        error=error_details(error, include_stack) if error is not None else None,
    )
