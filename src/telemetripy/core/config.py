"""Configuration for the telemetry pipeline."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

from telemetripy.core.models import LogLevel

_logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "development"

# Messages matching any of these are flushed immediately.
DEFAULT_CRITICAL_ERROR_PATTERNS: tuple[str, ...] = (
    r"ChunkLoadError",
    r"Loading chunk",
    r"Network Error",
    r"TypeError.*null",
    r"ReferenceError",
    r"NameError",
    r"'NoneType' object",
    r"Connection\w*Error",
)


class TrackingFeature(Enum):
    """Closed set of independently switchable tracking features."""

    ERRORS = "errors"
    PERFORMANCE = "performance"
    USER = "user"
    VITALS = "vitals"


def runtime_environment(environ: Mapping[str, str] | None = None) -> str:
    """Return the runtime environment name (``TELEMETRY_ENV``)."""
    env = os.environ if environ is None else environ
    return env.get("TELEMETRY_ENV", DEFAULT_ENVIRONMENT) or DEFAULT_ENVIRONMENT


def _parse_sample_rate(raw: str | None) -> float | None:
    """Parse ``TELEMETRY_SAMPLE_RATE``; unusable values fall back to the default."""
    if not raw:
        return None
    try:
        rate = float(raw)
    except ValueError:
        rate = None
    if rate is None or not 0.0 <= rate <= 1.0:
        _logger.warning("Ignoring invalid TELEMETRY_SAMPLE_RATE %r", raw)
        return None
    return rate


def default_log_level(environment: str, environ: Mapping[str, str] | None = None) -> LogLevel:
    """Resolve the logger threshold for an environment.

    ``TELEMETRY_LOG_LEVEL`` wins when it names a known level.
    """
    env = os.environ if environ is None else environ
    override = env.get("TELEMETRY_LOG_LEVEL")
    if override:
        level = LogLevel.parse(override)
        if level is not None:
            return level
    return LogLevel.DEBUG if environment == "development" else LogLevel.INFO


@dataclass(frozen=True)
class MonitoringConfig:
    """Settings for TelemetryManager.

    Attributes:
        api_endpoint: Collector URL. Without it (or ``api_key``) flushes go
            to local fallback storage.
        api_key: Bearer token sent with every flush.
        environment: Deployment environment name.
        build_version: Application build identifier.
        enable_error_tracking: Gate for ``track_error``.
        enable_performance_tracking: Gate for metrics and API calls.
        enable_user_tracking: Gate for user actions.
        enable_vitals_tracking: Gate for vitals.
        sample_rate: Probability in [0, 1] that an event is recorded.
        max_errors: Error ring capacity.
        max_metrics: Metric ring capacity.
        max_actions: User action ring capacity.
        max_api_metrics: API-call ring capacity.
        max_vitals: Vitals ring capacity.
        flush_interval_ms: Period of the flush timer.
        request_timeout_ms: Timeout of a single collector request.
        critical_error_patterns: Regexes that trigger an immediate flush.
    """

    api_endpoint: str | None = None
    api_key: str | None = None
    environment: str = field(default_factory=runtime_environment)
    build_version: str | None = field(
        default_factory=lambda: os.environ.get("TELEMETRY_BUILD_VERSION")
    )
    enable_error_tracking: bool = True
    enable_performance_tracking: bool = True
    enable_user_tracking: bool = True
    enable_vitals_tracking: bool = True
    sample_rate: float = 1.0
    max_errors: int = 100
    max_metrics: int = 1000
    max_actions: int = 1000
    max_api_metrics: int = 500
    max_vitals: int = 100
    flush_interval_ms: int = 30000
    request_timeout_ms: int = 10000
    critical_error_patterns: tuple[str, ...] = DEFAULT_CRITICAL_ERROR_PATTERNS

    def __post_init__(self) -> None:
        if not 0.0 <= self.sample_rate <= 1.0:
            raise ValueError(f"sample_rate must be within [0, 1], got {self.sample_rate}")
        for name in (
            "max_errors",
            "max_metrics",
            "max_actions",
            "max_api_metrics",
            "max_vitals",
            "flush_interval_ms",
            "request_timeout_ms",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def has_collector(self) -> bool:
        """True when both an endpoint and an API key are configured."""
        return bool(self.api_endpoint and self.api_key)

    def is_enabled(self, feature: TrackingFeature) -> bool:
        match feature:
            case TrackingFeature.ERRORS:
                return self.enable_error_tracking
            case TrackingFeature.PERFORMANCE:
                return self.enable_performance_tracking
            case TrackingFeature.USER:
                return self.enable_user_tracking
            case TrackingFeature.VITALS:
                return self.enable_vitals_tracking

    def merged(self, **changes: Any) -> "MonitoringConfig":
        """Return a new config with ``changes`` applied.

        Raises:
            TypeError: If a key is not a config field.
            ValueError: If the merged config is invalid.
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise TypeError(f"unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MonitoringConfig":
        """Build a config from ``TELEMETRY_*`` environment variables."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {
            "api_endpoint": env.get("TELEMETRY_API_ENDPOINT") or None,
            "api_key": env.get("TELEMETRY_API_KEY") or None,
            "environment": runtime_environment(env),
            "build_version": env.get("TELEMETRY_BUILD_VERSION") or None,
        }
        sample_rate = _parse_sample_rate(env.get("TELEMETRY_SAMPLE_RATE"))
        if sample_rate is not None:
            kwargs["sample_rate"] = sample_rate
        return cls(**kwargs)
