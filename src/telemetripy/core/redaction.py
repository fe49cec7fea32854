"""Masking of sensitive fields in log metadata."""

from collections.abc import Mapping
from typing import Any

REDACTED = "[REDACTED]"

# Matched against lowercased keys with "_" and "-" removed.
_SENSITIVE_FRAGMENTS = (
    "password",
    "passwd",
    "secret",
    "token",
    "apikey",
    "privatekey",
    "credential",
    "cookie",
    "authorization",
    "jwt",
    "salt",
)


def is_sensitive_key(key: str) -> bool:
    normalized = key.lower().replace("_", "").replace("-", "")
    return any(fragment in normalized for fragment in _SENSITIVE_FRAGMENTS)


def redact(value: Any) -> Any:
    """Return a copy of ``value`` with sensitive mapping keys masked.

    Mappings and sequences are walked recursively; other values are
    returned as-is.
    """
    if isinstance(value, Mapping):
        return {
            key: REDACTED if is_sensitive_key(str(key)) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value
