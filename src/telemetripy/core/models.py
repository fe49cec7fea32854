"""Core domain models for telemetry data.

Every record is immutable once created. ``to_dict()`` renders the camelCase
wire shape used by the collector payload and the local fallback store;
absent optional fields are omitted.
"""

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any


class LogLevel(IntEnum):
    """Log severity. Lower values are more severe."""

    ERROR = 0
    WARN = 1
    INFO = 2
    DEBUG = 3
    TRACE = 4

    @classmethod
    def parse(cls, value: str) -> "LogLevel | None":
        """Resolve a level name (case-insensitive), or None if unknown."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            return None


class MetricUnit(StrEnum):
    MS = "ms"
    BYTES = "bytes"
    COUNT = "count"
    PERCENTAGE = "percentage"


class VitalName(StrEnum):
    CLS = "CLS"
    FID = "FID"
    FCP = "FCP"
    LCP = "LCP"
    TTFB = "TTFB"


class VitalRating(StrEnum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs-improvement"
    POOR = "poor"


class ComponentPhase(StrEnum):
    MOUNT = "mount"
    RENDER = "render"
    UPDATE = "update"


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class LogContext:
    """Descriptive context attached to a log entry.

    Attributes:
        user_id: Identified user, if any.
        session_id: Telemetry session identifier.
        request_id: Correlation id of an outgoing or incoming request.
        component: Name of the emitting component.
        action: Short action tag (e.g. ``api_request``).
        metadata: Free-form structured fields.
    """

    user_id: str | None = None
    session_id: str | None = None
    request_id: str | None = None
    component: str | None = None
    action: str | None = None
    metadata: dict[str, Any] | None = None

    def merge(self, **overrides: Any) -> "LogContext":
        """Return a copy with the given fields replaced."""
        values = {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "request_id": self.request_id,
            "component": self.component,
            "action": self.action,
            "metadata": self.metadata,
        }
        values.update(overrides)
        return LogContext(**values)

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "userId": self.user_id,
                "sessionId": self.session_id,
                "requestId": self.request_id,
                "component": self.component,
                "action": self.action,
                "metadata": self.metadata,
            }
        )


@dataclass(frozen=True)
class ErrorDetails:
    """Serializable summary of an exception attached to a log entry."""

    name: str
    message: str
    stack: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"name": self.name, "message": self.message, "stack": self.stack})


@dataclass(frozen=True)
class LogEntry:
    """A structured log entry.

    Attributes:
        level: Severity of the entry.
        message: The log message.
        timestamp: ISO-8601 UTC timestamp.
        context: Optional descriptive context.
        error: Optional exception summary.
    """

    level: LogLevel
    message: str
    timestamp: str
    context: LogContext | None = None
    error: ErrorDetails | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "level": self.level.name,
                "message": self.message,
                "timestamp": self.timestamp,
                "context": self.context.to_dict() if self.context else None,
                "error": self.error.to_dict() if self.error else None,
            }
        )


@dataclass(frozen=True)
class PerformanceMetric:
    """A single named numeric measurement.

    Attributes:
        name: Metric name (e.g. ``api.call``).
        value: The measured value.
        unit: Unit of ``value``.
        timestamp: Unix timestamp in milliseconds.
        tags: Key-value dimensions.
        metadata: Free-form structured fields.
        url: Location the metric was captured at (manager metrics only).
        session_id: Telemetry session (manager metrics only).
        user_id: Identified user (manager metrics only).
    """

    name: str
    value: float
    unit: MetricUnit
    timestamp: int
    tags: dict[str, str] | None = None
    metadata: dict[str, Any] | None = None
    url: str | None = None
    session_id: str | None = None
    user_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "value": self.value,
                "unit": str(self.unit),
                "timestamp": self.timestamp,
                "tags": self.tags,
                "metadata": self.metadata,
                "url": self.url,
                "sessionId": self.session_id,
                "userId": self.user_id,
            }
        )


@dataclass(frozen=True)
class ErrorInfo:
    """A tracked runtime error."""

    message: str
    url: str
    user_agent: str
    timestamp: int
    session_id: str
    environment: str
    stack: str | None = None
    component_stack: str | None = None
    error_boundary: str | None = None
    user_id: str | None = None
    build_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "message": self.message,
                "stack": self.stack,
                "componentStack": self.component_stack,
                "errorBoundary": self.error_boundary,
                "url": self.url,
                "userAgent": self.user_agent,
                "timestamp": self.timestamp,
                "userId": self.user_id,
                "sessionId": self.session_id,
                "buildVersion": self.build_version,
                "environment": self.environment,
            }
        )


@dataclass(frozen=True)
class UserAction:
    action: str
    url: str
    timestamp: int
    session_id: str
    element: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "action": self.action,
                "element": self.element,
                "url": self.url,
                "timestamp": self.timestamp,
                "userId": self.user_id,
                "sessionId": self.session_id,
                "metadata": self.metadata,
            }
        )


@dataclass(frozen=True)
class APIMetric:
    endpoint: str
    method: str
    status_code: int
    duration: float
    timestamp: int
    session_id: str
    user_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "endpoint": self.endpoint,
                "method": self.method,
                "statusCode": self.status_code,
                "duration": self.duration,
                "timestamp": self.timestamp,
                "userId": self.user_id,
                "sessionId": self.session_id,
                "error": self.error,
            }
        )


@dataclass(frozen=True)
class VitalMetric:
    name: VitalName
    value: float
    rating: VitalRating
    timestamp: int
    url: str
    session_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": str(self.name),
            "value": self.value,
            "rating": str(self.rating),
            "timestamp": self.timestamp,
            "url": self.url,
            "sessionId": self.session_id,
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time copy of every buffer plus session identity.

    This is both the collector payload and the fallback storage record.
    """

    session_id: str
    user_id: str | None = None
    errors: tuple[ErrorInfo, ...] = ()
    metrics: tuple[PerformanceMetric, ...] = ()
    actions: tuple[UserAction, ...] = ()
    api_metrics: tuple[APIMetric, ...] = ()
    vitals: tuple[VitalMetric, ...] = ()

    def has_data(self) -> bool:
        return any(
            (self.errors, self.metrics, self.actions, self.api_metrics, self.vitals)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "errors": [e.to_dict() for e in self.errors],
            "metrics": [m.to_dict() for m in self.metrics],
            "actions": [a.to_dict() for a in self.actions],
            "apiMetrics": [a.to_dict() for a in self.api_metrics],
            "vitals": [v.to_dict() for v in self.vitals],
        }


@dataclass
class ComponentMetrics:
    """Aggregate lifecycle timing for one component name."""

    name: str
    last_update: int
    mount_time: float = 0.0
    render_time: float = 0.0
    update_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mountTime": self.mount_time,
            "renderTime": self.render_time,
            "updateCount": self.update_count,
            "lastUpdate": self.last_update,
        }


@dataclass(frozen=True)
class NavigationMetrics:
    """Page-load timing derived from the host navigation table (ms)."""

    dns: float
    tcp: float
    ssl: float
    ttfb: float
    dom_content_loaded: float
    load_complete: float
    first_paint: float
    first_contentful_paint: float
    largest_contentful_paint: float
    first_input_delay: float
    cumulative_layout_shift: float


@dataclass(frozen=True)
class ResourceMetrics:
    name: str
    type: str
    size: int
    duration: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class MemoryMetrics:
    used_heap_size: int
    total_heap_size: int
    heap_size_limit: int
    used_percentage: float


@dataclass(frozen=True)
class PerformanceSummary:
    navigation: NavigationMetrics | None
    memory: MemoryMetrics | None
    resources: list[ResourceMetrics] = field(default_factory=list)
    components: list[ComponentMetrics] = field(default_factory=list)
    custom_metrics: list[PerformanceMetric] = field(default_factory=list)
