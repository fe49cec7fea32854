"""Host runtime adapters implementing PlatformTelemetrySource."""

import logging
import time
from collections import defaultdict
from collections.abc import Mapping, Sequence

from telemetripy.core.ports import EntryCallback, HeapUsage, PerformanceEntry

_logger = logging.getLogger(__name__)


class NullTelemetrySource:
    """Source for hosts without timing or observation APIs.

    Every query returns None or empty and observation is unsupported.
    """

    def current_url(self) -> str:
        return ""

    def user_agent(self) -> str:
        return ""

    def navigation_timing(self) -> Mapping[str, float] | None:
        return None

    def entries_by_type(self, entry_type: str) -> Sequence[PerformanceEntry]:
        return []

    def heap_usage(self) -> HeapUsage | None:
        return None

    def mark(self, name: str) -> None:
        return None

    def measure(self, name: str, start_mark: str, end_mark: str | None = None) -> float:
        return 0.0

    def observe(self, entry_type: str, callback: EntryCallback) -> None:
        return None


class _RecordedSubscription:
    def __init__(self, source: "RecordedTelemetrySource", entry_type: str, callback: EntryCallback) -> None:
        self._source = source
        self._entry_type = entry_type
        self._callback = callback
        self.connected = True

    def disconnect(self) -> None:
        if self.connected:
            self._source._unsubscribe(self._entry_type, self._callback)
            self.connected = False


class RecordedTelemetrySource:
    """Scriptable source fed by the host (or by tests).

    Hosts that receive timing data out of band (for example beacons posted
    by a browser) push it here with ``set_*``, ``add_entries`` and
    ``emit``; the recorder reads and observes it like a live runtime.
    Marks use ``time.perf_counter``.
    """

    def __init__(self, url: str = "", user_agent: str = "") -> None:
        self._url = url
        self._user_agent = user_agent
        self._navigation: dict[str, float] | None = None
        self._heap: HeapUsage | None = None
        self._entries: dict[str, list[PerformanceEntry]] = defaultdict(list)
        self._observers: dict[str, list[EntryCallback]] = defaultdict(list)
        self._marks: dict[str, float] = {}

    # --- host-side feeding ---

    def set_url(self, url: str) -> None:
        self._url = url

    def set_navigation_timing(self, timing: Mapping[str, float] | None) -> None:
        self._navigation = dict(timing) if timing is not None else None

    def set_heap_usage(self, heap: HeapUsage | None) -> None:
        self._heap = heap

    def add_entries(self, entries: Sequence[PerformanceEntry]) -> None:
        """Buffer entries without notifying observers."""
        for entry in entries:
            self._entries[entry.entry_type].append(entry)

    def emit(self, entry_type: str, entries: Sequence[PerformanceEntry]) -> None:
        """Buffer entries and deliver them to every observer of their type."""
        self.add_entries(entries)
        for callback in list(self._observers.get(entry_type, ())):
            try:
                callback(entries)
            except Exception:
                _logger.exception("Observer for %s failed", entry_type)

    def observer_count(self, entry_type: str) -> int:
        return len(self._observers.get(entry_type, ()))

    # --- PlatformTelemetrySource ---

    def current_url(self) -> str:
        return self._url

    def user_agent(self) -> str:
        return self._user_agent

    def navigation_timing(self) -> Mapping[str, float] | None:
        return self._navigation

    def entries_by_type(self, entry_type: str) -> Sequence[PerformanceEntry]:
        return list(self._entries.get(entry_type, ()))

    def heap_usage(self) -> HeapUsage | None:
        return self._heap

    def mark(self, name: str) -> None:
        self._marks[name] = time.perf_counter()

    def measure(self, name: str, start_mark: str, end_mark: str | None = None) -> float:
        start = self._marks[start_mark]
        end = self._marks[end_mark] if end_mark is not None else time.perf_counter()
        duration = (end - start) * 1000
        self.add_entries(
            [PerformanceEntry(name=name, entry_type="measure", start_time=start * 1000, duration=duration)]
        )
        return duration

    def observe(self, entry_type: str, callback: EntryCallback) -> _RecordedSubscription:
        self._observers[entry_type].append(callback)
        return _RecordedSubscription(self, entry_type, callback)

    def _unsubscribe(self, entry_type: str, callback: EntryCallback) -> None:
        callbacks = self._observers.get(entry_type)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)
