"""Durable key-value backends that mirror persisted cache entries.

All backends are asynchronous and every operation may fail individually with
``DurableStoreError``. ``CacheStore`` logs and swallows those failures, so a
broken backend degrades the cache to memory-only instead of breaking callers.

Backends:
    InMemoryDurableStore: dict-backed, for tests and ephemeral hosts
    SQLiteDurableStore: SQLite database in WAL mode, I/O moved off the loop
    FallbackDurableStore: wraps a primary backend and falls back to memory
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from ..errors import DurableStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DurableStore(ABC):
    """Asynchronous string key-value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Insert or overwrite ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are not an error."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """All keys starting with ``prefix``."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryDurableStore(DurableStore):
    """Dict-backed store. Survives nothing, but honours the full contract."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class SQLiteDurableStore(DurableStore):
    """Persistent store backed by an SQLite database in WAL mode.

    Blocking SQLite calls run in worker threads via ``asyncio.to_thread``. A
    single connection is shared by those threads and serialized with a lock.

    Attributes:
        db_path: Database file, or ":memory:"
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_database()
        logger.info(f"Initialized SQLiteDurableStore at {self.db_path} (WAL mode)")

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute("PRAGMA temp_store=MEMORY")
        return self._conn

    def _init_database(self) -> None:
        with self._lock:
            conn = self._get_connection()
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS durable_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """
            )
            conn.commit()

    def _run_locked(
        self, operation: str, key: Optional[str], func: Callable[[sqlite3.Connection], T]
    ) -> T:
        with self._lock:
            try:
                return func(self._get_connection())
            except sqlite3.Error as e:
                raise DurableStoreError(operation, key, e) from e

    async def _call(
        self, operation: str, key: Optional[str], func: Callable[[sqlite3.Connection], T]
    ) -> T:
        return await asyncio.to_thread(self._run_locked, operation, key, func)

    async def get(self, key: str) -> Optional[str]:
        def _get(conn: sqlite3.Connection) -> Optional[str]:
            row = conn.execute("SELECT value FROM durable_entries WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

        return await self._call("get", key, _get)

    async def set(self, key: str, value: str) -> None:
        def _set(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO durable_entries (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, time.time()),
            )
            conn.commit()

        await self._call("set", key, _set)

    async def delete(self, key: str) -> None:
        def _delete(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM durable_entries WHERE key = ?", (key,))
            conn.commit()

        await self._call("delete", key, _delete)

    async def list_keys(self, prefix: str = "") -> List[str]:
        def _list(conn: sqlite3.Connection) -> List[str]:
            rows = conn.execute(
                "SELECT key FROM durable_entries WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
            return [row[0] for row in rows]

        return await self._call("list_keys", None, _list)

    async def close(self) -> None:
        await asyncio.to_thread(self._close)

    def _close(self) -> None:
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                except sqlite3.Error as e:
                    logger.error(f"Failed to close database connection: {e}")
                finally:
                    self._conn = None


class FallbackDurableStore(DurableStore):
    """Uses ``primary`` and falls back to an in-memory map when it fails.

    Writes that fail on the primary land in memory so the value stays
    readable for the lifetime of the process.
    """

    def __init__(self, primary: DurableStore):
        self.primary = primary
        self._memory = InMemoryDurableStore()

    async def _with_fallback(
        self,
        operation: str,
        primary_call: Callable[[], Any],
        fallback_call: Callable[[], Any],
    ) -> Any:
        try:
            return await primary_call()
        except DurableStoreError as e:
            logger.warning(f"Falling back to memory storage for {operation}: {e}")
            return await fallback_call()

    async def get(self, key: str) -> Optional[str]:
        value = await self._with_fallback(
            "get", lambda: self.primary.get(key), lambda: self._memory.get(key)
        )
        if value is None:
            return await self._memory.get(key)
        return value

    async def set(self, key: str, value: str) -> None:
        await self._with_fallback(
            "set", lambda: self.primary.set(key, value), lambda: self._memory.set(key, value)
        )

    async def delete(self, key: str) -> None:
        await self._memory.delete(key)
        await self._with_fallback(
            "delete", lambda: self.primary.delete(key), lambda: self._memory.delete(key)
        )

    async def list_keys(self, prefix: str = "") -> List[str]:
        keys = await self._with_fallback(
            "list_keys",
            lambda: self.primary.list_keys(prefix),
            lambda: self._memory.list_keys(prefix),
        )
        extra = [key for key in await self._memory.list_keys(prefix) if key not in keys]
        return list(keys) + extra

    async def close(self) -> None:
        await self.primary.close()
