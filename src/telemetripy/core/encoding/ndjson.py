"""JSON encoders for log entries and session snapshots."""

import json
from collections.abc import Iterable, Mapping
from typing import Any

from telemetripy.core.models import LogEntry, SessionSnapshot


def _default(value: Any) -> Any:
    # Metadata is caller-supplied; anything json can't handle is stringified.
    return str(value)


def dumps(obj: Any) -> str:
    """Serialize to compact JSON, stringifying unknown types."""
    return json.dumps(obj, default=_default, separators=(",", ":"))


def encode_entry(entry: LogEntry) -> str:
    """Encode one log entry as a single JSON line (no trailing newline)."""
    return dumps(entry.to_dict())


def encode_logs(entries: Iterable[LogEntry | Mapping[str, Any]]) -> str:
    """Encode log entries to newline-delimited JSON.

    Args:
        entries: LogEntry objects or already-decoded entry dicts.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no entries.
    """
    lines = [
        dumps(entry.to_dict() if isinstance(entry, LogEntry) else dict(entry))
        for entry in entries
    ]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def encode_ndjson(objects: Iterable[Mapping[str, Any]]) -> str:
    """Encode arbitrary JSON objects to newline-delimited JSON."""
    lines = [dumps(dict(obj)) for obj in objects]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def encode_snapshot(snapshot: SessionSnapshot) -> str:
    """Encode a session snapshot as the collector request body."""
    return dumps(snapshot.to_dict())


def decode_list(raw: str | None) -> list[Any]:
    """Decode a stored JSON array, treating anything unreadable as empty."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    return value if isinstance(value, list) else []
