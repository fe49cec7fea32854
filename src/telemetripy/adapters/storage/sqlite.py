"""SQLite key-value storage adapter."""

from telemetripy.adapters.storage.sqlite_base import (
    AsyncConnectionManager,
    SyncConnectionManager,
)

_KV_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL DEFAULT (julianday('now'))
);
"""

_SELECT_VALUE = """
SELECT value FROM kv_store WHERE key = ?
"""

_UPSERT_VALUE = """
INSERT INTO kv_store (key, value) VALUES (?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = julianday('now')
"""

_DELETE_VALUE = """
DELETE FROM kv_store WHERE key = ?
"""


class SQLiteKeyValueStore:
    """SQLite implementation of KeyValueStorePort.

    Async methods use aiosqlite so fallback writes never block the event
    loop; the ``*_sync`` methods use the standard sqlite3 module. File
    databases run in WAL mode and are shared by both paths. For :memory:
    databases the sync and async paths see separate databases.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._async_manager = AsyncConnectionManager(db_path, _KV_SCHEMA)
        self._sync_manager = SyncConnectionManager(db_path, _KV_SCHEMA)

    async def get(self, key: str) -> str | None:
        async with self._async_manager.connection() as db:
            async with db.execute(_SELECT_VALUE, (key,)) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        async with self._async_manager.connection() as db:
            await db.execute(_UPSERT_VALUE, (key, value))
            await db.commit()

    async def delete(self, key: str) -> None:
        async with self._async_manager.connection() as db:
            await db.execute(_DELETE_VALUE, (key,))
            await db.commit()

    async def close(self) -> None:
        """Close persistent connections (for :memory: databases)."""
        await self._async_manager.close()
        self._sync_manager.close()

    # --- Sync methods using standard sqlite3 module ---

    def get_sync(self, key: str) -> str | None:
        with self._sync_manager.connection() as conn:
            row = conn.execute(_SELECT_VALUE, (key,)).fetchone()
            return row[0] if row else None

    def set_sync(self, key: str, value: str) -> None:
        with self._sync_manager.connection() as conn:
            conn.execute(_UPSERT_VALUE, (key, value))
            conn.commit()

    def delete_sync(self, key: str) -> None:
        with self._sync_manager.connection() as conn:
            conn.execute(_DELETE_VALUE, (key,))
            conn.commit()
