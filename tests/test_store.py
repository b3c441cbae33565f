from __future__ import annotations

import asyncio
import sqlite3
import tempfile
import unittest
from pathlib import Path

from newsreader.memory.store import InMemoryKeyValueStore, SQLiteKeyValueStore
from newsreader.models.errors import StorageReadError, StorageWriteError


def run(coro):
    return asyncio.run(coro)


class InMemoryKeyValueStoreTests(unittest.TestCase):
    def test_get_set_remove(self) -> None:
        store = InMemoryKeyValueStore()
        self.assertIsNone(run(store.get("k")))
        run(store.set("k", "v1"))
        run(store.set("k", "v2"))
        self.assertEqual(run(store.get("k")), "v2")
        run(store.remove("k"))
        self.assertIsNone(run(store.get("k")))

    def test_remove_missing_is_noop(self) -> None:
        store = InMemoryKeyValueStore()
        run(store.remove("nothing"))
        self.assertEqual(store.keys(), [])

    def test_rejects_non_string(self) -> None:
        store = InMemoryKeyValueStore()
        with self.assertRaises(StorageWriteError):
            run(store.set("k", {"a": 1}))  # type: ignore[arg-type]

    def test_initial_and_keys(self) -> None:
        store = InMemoryKeyValueStore({"b": "2", "a": "1"})
        self.assertEqual(store.keys(), ["a", "b"])


class SQLiteKeyValueStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "nested" / "reader.db"
        self.store = SQLiteKeyValueStore(self.path)

    def tearDown(self) -> None:
        self.store.close()
        self._tmp.cleanup()

    def test_creates_parent_dirs(self) -> None:
        self.assertTrue(self.path.exists())

    def test_get_set_remove(self) -> None:
        run(self.store.set("@reading_history", "[]"))
        self.assertEqual(run(self.store.get("@reading_history")), "[]")
        run(self.store.set("@reading_history", '[{"url": "x"}]'))
        self.assertEqual(run(self.store.get("@reading_history")), '[{"url": "x"}]')
        run(self.store.remove("@reading_history"))
        self.assertIsNone(run(self.store.get("@reading_history")))
        run(self.store.remove("@reading_history"))

    def test_persists_across_instances(self) -> None:
        run(self.store.set("@news_cache_metadata", "[]"))
        self.store.close()
        self.store = SQLiteKeyValueStore(self.path)
        self.assertEqual(run(self.store.get("@news_cache_metadata")), "[]")
        self.assertEqual(self.store.keys(), ["@news_cache_metadata"])

    def test_concurrent_writes(self) -> None:
        async def write_many() -> None:
            await asyncio.gather(*(self.store.set(f"k{i}", str(i)) for i in range(20)))

        run(write_many())
        self.assertEqual(len(self.store.keys()), 20)

    def test_sqlite_errors_are_wrapped(self) -> None:
        self.store._conn.execute("DROP TABLE state_kv")
        with self.assertRaises(StorageReadError):
            run(self.store.get("k"))
        with self.assertRaises(StorageWriteError) as ctx:
            run(self.store.set("k", "v"))
        self.assertIsInstance(ctx.exception.__cause__, sqlite3.Error)


if __name__ == "__main__":
    unittest.main()
