"""Storage adapters implementing core ports."""

from telemetripy.adapters.storage.in_memory import InMemoryKeyValueStore
from telemetripy.adapters.storage.sqlite import SQLiteKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "SQLiteKeyValueStore",
]
