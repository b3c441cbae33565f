from __future__ import annotations

import asyncio
import json
import unittest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from newsreader.history.log import HISTORY_STORAGE_KEY, ReadingHistory
from newsreader.memory.store import InMemoryKeyValueStore
from newsreader.models.errors import NotFoundError, StorageReadError, StorageWriteError

T0 = 1_773_576_000_000
DAY_MS = 24 * 60 * 60 * 1000


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class ReadOnlyStore(InMemoryKeyValueStore):
    async def set(self, key: str, value: str) -> None:
        raise StorageWriteError(key, "read-only")

    async def remove(self, key: str) -> None:
        raise StorageWriteError(key, "read-only")


class UnreadableStore(InMemoryKeyValueStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail_reads: set[str] = set()

    async def get(self, key: str) -> str | None:
        if key in self.fail_reads:
            raise StorageReadError(key, "disk error")
        return await super().get(key)


def run(coro):
    return asyncio.run(coro)


class ReadingHistoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.store = InMemoryKeyValueStore()
        self.history = ReadingHistory(self.store, clock=self.clock)

    def test_record_prepends(self) -> None:
        run(self.history.record("https://a", 30, "technology", "Wired"))
        self.clock.now += 1000
        run(self.history.record("https://b", 60, "business", "FT"))
        events = run(self.history.all())
        self.assertEqual([e.item_id for e in events], ["https://b", "https://a"])
        self.assertEqual(events[1].category, "technology")
        self.assertEqual(events[1].source_name, "Wired")
        self.assertEqual(events[1].timestamp_ms, T0)

    def test_rereading_moves_to_head_without_duplicate(self) -> None:
        run(self.history.record("https://a", 30))
        self.clock.now += 1000
        run(self.history.record("https://b", 10))
        self.clock.now += 1000
        run(self.history.record("https://a", 90))

        events = run(self.history.all())
        self.assertEqual([e.item_id for e in events], ["https://a", "https://b"])
        self.assertEqual(events[0].timestamp_ms, T0 + 2000)
        self.assertEqual(events[0].duration_seconds, 90)

    def test_cap_evicts_oldest(self) -> None:
        history = ReadingHistory(self.store, clock=self.clock, max_items=3)
        for i in range(5):
            self.clock.now += 1
            run(history.record(f"https://item/{i}"))
        events = run(history.all())
        self.assertEqual([e.item_id for e in events], ["https://item/4", "https://item/3", "https://item/2"])

    def test_default_cap_is_100(self) -> None:
        for i in range(105):
            run(self.history.record(f"https://item/{i}"))
        events = run(self.history.all())
        self.assertEqual(len(events), 100)
        self.assertEqual(events[0].item_id, "https://item/104")

    def test_recent(self) -> None:
        for i in range(5):
            run(self.history.record(f"https://item/{i}"))
        recent = run(self.history.recent(2))
        self.assertEqual([e.item_id for e in recent], ["https://item/4", "https://item/3"])

    def test_remove_and_clear(self) -> None:
        run(self.history.record("https://a"))
        run(self.history.record("https://b"))
        run(self.history.remove("https://a"))
        self.assertEqual([e.item_id for e in run(self.history.all())], ["https://b"])
        run(self.history.remove("https://missing"))
        run(self.history.clear())
        self.assertEqual(run(self.history.all()), [])
        self.assertIsNone(run(self.store.get(HISTORY_STORAGE_KEY)))

    def test_has_read_and_duration(self) -> None:
        run(self.history.record("https://a", 42))
        self.assertTrue(run(self.history.has_read("https://a")))
        self.assertFalse(run(self.history.has_read("https://b")))
        self.assertEqual(run(self.history.duration_for("https://a")), 42)
        self.assertEqual(run(self.history.duration_for("https://b")), 0)

    def test_update_duration(self) -> None:
        run(self.history.record("https://a", 10))
        run(self.history.record("https://b", 10))
        event = run(self.history.update_duration("https://a", 75))
        self.assertEqual(event.duration_seconds, 75)
        events = run(self.history.all())
        # Order unchanged
        self.assertEqual([e.item_id for e in events], ["https://b", "https://a"])
        self.assertEqual(events[1].duration_seconds, 75)

    def test_update_duration_missing_raises(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            run(self.history.update_duration("https://nope", 5))
        self.assertIn("https://nope", str(ctx.exception))

    def test_negative_duration_clamped(self) -> None:
        run(self.history.record("https://a", -5))
        self.assertEqual(run(self.history.duration_for("https://a")), 0)

    def test_malformed_storage_treated_as_empty(self) -> None:
        self.store._data[HISTORY_STORAGE_KEY] = "{oops"
        self.assertEqual(run(self.history.all()), [])
        run(self.history.record("https://a"))
        self.assertEqual(len(run(self.history.all())), 1)

    def test_malformed_rows_skipped(self) -> None:
        self.store._data[HISTORY_STORAGE_KEY] = json.dumps([
            {"url": "https://ok", "readAt": T0, "readingTime": 5, "category": "science", "source": "Nature"},
            {"readAt": T0},
            42,
        ])
        events = run(self.history.all())
        self.assertEqual([e.item_id for e in events], ["https://ok"])

    def test_record_swallows_storage_failure(self) -> None:
        history = ReadingHistory(ReadOnlyStore(), clock=self.clock)
        run(history.record("https://a"))
        self.assertEqual(run(history.all()), [])

    def test_clear_propagates_storage_failure(self) -> None:
        history = ReadingHistory(ReadOnlyStore(), clock=self.clock)
        with self.assertRaises(StorageWriteError):
            run(history.clear())

    def test_record_keeps_log_when_read_fails(self) -> None:
        store = UnreadableStore()
        history = ReadingHistory(store, clock=self.clock)
        for i in range(5):
            run(history.record(f"https://item/{i}"))

        store.fail_reads.add(HISTORY_STORAGE_KEY)
        run(history.record("https://new"))
        self.assertEqual(run(history.all()), [])
        with self.assertRaises(StorageReadError):
            run(history.remove("https://item/0"))
        with self.assertRaises(StorageReadError):
            run(history.update_duration("https://item/0", 30))
        store.fail_reads.clear()

        events = run(history.all())
        self.assertEqual(len(events), 5)
        self.assertNotIn("https://new", [e.item_id for e in events])

    def test_stats_uses_configured_timezone(self) -> None:
        # 23:00 UTC on the 14th and 03:00 UTC on the 15th are both the 14th in New York
        self.clock.now = int(datetime(2026, 3, 14, 23, 0, tzinfo=timezone.utc).timestamp() * 1000)
        run(self.history.record("https://a"))
        self.clock.now = int(datetime(2026, 3, 15, 3, 0, tzinfo=timezone.utc).timestamp() * 1000)
        run(self.history.record("https://b"))

        local = ReadingHistory(self.store, clock=self.clock, tz=ZoneInfo("America/New_York"))
        self.assertEqual(run(self.history.stats()).current_streak, 2)
        self.assertEqual(run(local.stats()).current_streak, 1)
        self.assertEqual(run(local.stats(tz=timezone.utc)).current_streak, 2)

    def test_stats_uses_clock(self) -> None:
        run(self.history.record("https://a", 120, "technology", "Wired"))
        self.clock.now += DAY_MS
        run(self.history.record("https://b", 60, "technology", "Verge"))
        stats = run(self.history.stats())
        self.assertEqual(stats.total_count, 2)
        self.assertEqual(stats.current_streak, 2)
        self.assertEqual(stats.favorite_category, "technology")
        self.assertAlmostEqual(stats.total_minutes, 3.0)


if __name__ == "__main__":
    unittest.main()
