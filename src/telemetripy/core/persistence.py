"""Capped JSON lists kept in a key-value store.

Both local fallback records (the logger audit trail and unsent monitoring
sessions) are plain JSON arrays stored under a single key. Corrupt or
unreadable values read as empty; the next write replaces them.
"""

from typing import Any

from telemetripy.core.encoding.ndjson import decode_list, dumps
from telemetripy.core.ports import KeyValueStorePort

LOGS_KEY = "app_logs"
MONITORING_KEY = "monitoring_data"
MAX_STORED_LOGS = 100
MAX_STORED_SESSIONS = 10


class CappedJsonList:
    """A JSON array under ``key`` that keeps only its last ``max_items``.

    Args:
        store: Backing key-value store.
        key: Storage key.
        max_items: Cap; the oldest items are evicted first.
    """

    def __init__(self, store: KeyValueStorePort, key: str, max_items: int) -> None:
        self.store = store
        self.key = key
        self.max_items = max_items

    def _appended(self, raw: str | None, item: Any) -> str:
        items = decode_list(raw)
        items.append(item)
        return dumps(items[-self.max_items :])

    async def append(self, item: Any) -> None:
        raw = await self.store.get(self.key)
        await self.store.set(self.key, self._appended(raw, item))

    async def read(self) -> list[Any]:
        return decode_list(await self.store.get(self.key))

    async def clear(self) -> None:
        await self.store.delete(self.key)

    def append_sync(self, item: Any) -> None:
        raw = self.store.get_sync(self.key)
        self.store.set_sync(self.key, self._appended(raw, item))

    def read_sync(self) -> list[Any]:
        return decode_list(self.store.get_sync(self.key))

    def clear_sync(self) -> None:
        self.store.delete_sync(self.key)
