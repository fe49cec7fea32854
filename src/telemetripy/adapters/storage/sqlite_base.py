"""SQLite connection handling shared by the async and sync store paths."""

import asyncio
import sqlite3
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

import aiosqlite

MEMORY_DB = ":memory:"

# Applied once per file database, before the schema.
_FILE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=5000",
)


class _ConnectionSettings:
    def __init__(self, db_path: str, schema: str) -> None:
        self.db_path = db_path
        self.schema = schema
        self.ready = False

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY_DB

    @property
    def setup_statements(self) -> tuple[str, ...]:
        return () if self.in_memory else _FILE_PRAGMAS


class AsyncConnectionManager:
    """Hands out aiosqlite connections with the schema applied.

    File databases get a fresh connection per use. A :memory: database
    only lives as long as its connection, so one connection is opened on
    first use and kept until ``close()``.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._settings = _ConnectionSettings(db_path, schema)
        self._memory_conn: aiosqlite.Connection | None = None
        self._setup_lock: asyncio.Lock | None = None

    def _lock(self) -> asyncio.Lock:
        # Bound to the loop that first uses it.
        if self._setup_lock is None:
            self._setup_lock = asyncio.Lock()
        return self._setup_lock

    async def _prepare(self) -> None:
        settings = self._settings
        if settings.ready:
            return
        async with self._lock():
            if settings.ready:
                return
            if settings.in_memory:
                self._memory_conn = await aiosqlite.connect(MEMORY_DB)
                await self._memory_conn.executescript(settings.schema)
            else:
                async with aiosqlite.connect(settings.db_path) as db:
                    for statement in settings.setup_statements:
                        await db.execute(statement)
                    await db.executescript(settings.schema)
            settings.ready = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        await self._prepare()
        if self._settings.in_memory:
            if self._memory_conn is None:
                raise RuntimeError("In-memory key-value database is closed")
            yield self._memory_conn
            return
        async with aiosqlite.connect(self._settings.db_path) as db:
            yield db

    async def close(self) -> None:
        """Drop the :memory: connection; the next use starts empty."""
        conn, self._memory_conn = self._memory_conn, None
        self._settings.ready = False
        if conn is not None:
            await conn.close()


class SyncConnectionManager:
    """sqlite3 counterpart of AsyncConnectionManager.

    Used by logging handlers that cannot await. For :memory: the database
    is private to this manager and never shared with the async path.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._settings = _ConnectionSettings(db_path, schema)
        self._memory_conn: sqlite3.Connection | None = None
        self._setup_lock = threading.Lock()

    def _prepare(self) -> None:
        settings = self._settings
        if settings.ready:
            return
        with self._setup_lock:
            if settings.ready:
                return
            if settings.in_memory:
                # Handlers may emit from any thread.
                self._memory_conn = sqlite3.connect(MEMORY_DB, check_same_thread=False)
                self._memory_conn.executescript(settings.schema)
            else:
                db = sqlite3.connect(settings.db_path)
                try:
                    for statement in settings.setup_statements:
                        db.execute(statement)
                    db.executescript(settings.schema)
                finally:
                    db.close()
            settings.ready = True

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        self._prepare()
        if self._settings.in_memory:
            if self._memory_conn is None:
                raise RuntimeError("In-memory key-value database is closed")
            yield self._memory_conn
            return
        db = sqlite3.connect(self._settings.db_path)
        try:
            yield db
        finally:
            db.close()

    def close(self) -> None:
        conn, self._memory_conn = self._memory_conn, None
        self._settings.ready = False
        if conn is not None:
            conn.close()
