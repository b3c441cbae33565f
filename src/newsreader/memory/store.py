"""Key-value persistence used by the cache and the reading log.

The core only needs string get/set/remove. Callers JSON-encode their own
values and keep to distinct key prefixes in the shared namespace:

    @news_cache_<kind>_<discriminator>   cache entries
    @news_cache_metadata                 cache index
    @reading_history                     reading event log

Two backends ship here: an in-memory dict (tests, ephemeral sessions) and a
SQLite file using a single ``state_kv`` table.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path

from newsreader.models.errors import StorageReadError, StorageWriteError

log = logging.getLogger(__name__)

_STATE_SCHEMA = """
CREATE TABLE IF NOT EXISTS state_kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  REAL NOT NULL
);
"""


class KeyValueStore(ABC):
    """Async string-keyed storage with no transactions and no size bound."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored string or None when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete *key*. Removing an absent key is not an error."""


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(0)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        if not isinstance(value, str):
            raise StorageWriteError(key, "values must be strings")
        self._data[key] = value

    async def remove(self, key: str) -> None:
        await asyncio.sleep(0)
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SQLiteKeyValueStore(KeyValueStore):
    """Key-value store backed by a local SQLite file.

    sqlite3 calls are blocking, so each one runs in a worker thread via
    ``asyncio.to_thread``. A single connection is shared and serialized
    with a lock; sqlite errors surface as StorageReadError/StorageWriteError.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.executescript(_STATE_SCHEMA)
        self._conn.commit()

    def _get_sync(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM state_kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _set_sync(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO state_kv (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, time.time()),
            )
            self._conn.commit()

    def _remove_sync(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM state_kv WHERE key = ?", (key,))
            self._conn.commit()

    async def get(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._get_sync, key)
        except sqlite3.Error as e:
            raise StorageReadError(key, str(e)) from e

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageWriteError(key, "values must be strings")
        try:
            await asyncio.to_thread(self._set_sync, key, value)
        except sqlite3.Error as e:
            raise StorageWriteError(key, str(e)) from e

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._remove_sync, key)
        except sqlite3.Error as e:
            raise StorageWriteError(key, str(e)) from e

    def keys(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM state_kv ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        log.debug("Closed key-value store at %s", self.path)
