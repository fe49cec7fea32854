"""Core models, configuration and pure telemetry logic."""
