"""Port interfaces for telemetry adapters.

These protocols define the contracts that storage, transport and host
adapters must implement. The core depends only on these interfaces, not
concrete implementations.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStorePort(Protocol):
    """Port for durable client-side key-value storage.

    Values are JSON text. Async methods serve the event loop (flush
    fallback), the ``*_sync`` variants serve synchronous callers (the
    logger audit trail).
    Examples: InMemoryKeyValueStore, SQLiteKeyValueStore.
    """

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def delete(self, key: str) -> None:
        """Remove ``key``. Removing an absent key is not an error."""
        ...

    def get_sync(self, key: str) -> str | None:
        """Synchronous get for non-async contexts."""
        ...

    def set_sync(self, key: str, value: str) -> None:
        """Synchronous set for non-async contexts."""
        ...

    def delete_sync(self, key: str) -> None:
        """Synchronous delete for non-async contexts."""
        ...


@dataclass(frozen=True)
class PerformanceEntry:
    """One host timing entry (paint, layout shift, resource, ...).

    Attributes:
        name: Entry name (e.g. ``first-contentful-paint`` or a resource URL).
        entry_type: Stream the entry belongs to (e.g. ``layout-shift``).
        start_time: Milliseconds since the time origin.
        duration: Milliseconds.
        detail: Type-specific fields (``processingStart``, ``value``,
            ``hadRecentInput``, ``transferSize``, ``initiatorType``, ...).
    """

    name: str
    entry_type: str
    start_time: float
    duration: float = 0.0
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HeapUsage:
    used: int
    total: int
    limit: int


class Subscription(Protocol):
    """Handle returned by ``PlatformTelemetrySource.observe``."""

    def disconnect(self) -> None: ...


EntryCallback = Callable[[Sequence[PerformanceEntry]], None]


@runtime_checkable
class PlatformTelemetrySource(Protocol):
    """Host runtime timing and observation APIs.

    Every method degrades to None / empty when the host lacks the
    underlying data.
    """

    def current_url(self) -> str:
        """Location of the running client, or an empty string."""
        ...

    def user_agent(self) -> str:
        """Client identification string, or an empty string."""
        ...

    def navigation_timing(self) -> Mapping[str, float] | None:
        """Legacy navigation timing table keyed by snake_case field names."""
        ...

    def entries_by_type(self, entry_type: str) -> Sequence[PerformanceEntry]:
        """Buffered entries of one type."""
        ...

    def heap_usage(self) -> HeapUsage | None:
        """Current heap usage."""
        ...

    def mark(self, name: str) -> None:
        """Record a named timestamp."""
        ...

    def measure(self, name: str, start_mark: str, end_mark: str | None = None) -> float:
        """Milliseconds between two marks (``end_mark`` defaults to now).

        Raises:
            KeyError: If a mark does not exist.
        """
        ...

    def observe(self, entry_type: str, callback: EntryCallback) -> Subscription | None:
        """Subscribe to an entry stream, or None if it is unsupported."""
        ...
