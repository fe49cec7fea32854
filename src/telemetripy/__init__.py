"""Host-embedded telemetry: structured logs, metrics, vitals and flushing."""

from telemetripy.api import (
    TelemetryContext,
    get_telemetry,
    init_telemetry,
    shutdown_telemetry,
)
from telemetripy.core.config import MonitoringConfig, TrackingFeature
from telemetripy.core.models import (
    LogContext,
    LogEntry,
    LogLevel,
    MetricUnit,
    PerformanceMetric,
    SessionSnapshot,
    VitalName,
    VitalRating,
)
from telemetripy.core.vitals import classify
from telemetripy.logger import StructuredLogger
from telemetripy.manager import TelemetryManager
from telemetripy.recorder import MetricRecorder

__all__ = [
    "LogContext",
    "LogEntry",
    "LogLevel",
    "MetricRecorder",
    "MetricUnit",
    "MonitoringConfig",
    "PerformanceMetric",
    "SessionSnapshot",
    "StructuredLogger",
    "TelemetryContext",
    "TelemetryManager",
    "TrackingFeature",
    "VitalName",
    "VitalRating",
    "classify",
    "get_telemetry",
    "init_telemetry",
    "shutdown_telemetry",
]
