from __future__ import annotations

import json
import logging
from datetime import tzinfo

from newsreader.analytics.stats import compute_stats
from newsreader.memory.store import KeyValueStore
from newsreader.models.domain import Clock, ReadingEvent, StatsSnapshot, now_ms
from newsreader.models.errors import NotFoundError, StorageError, StorageReadError

log = logging.getLogger(__name__)

HISTORY_STORAGE_KEY = "@reading_history"
MAX_HISTORY_ITEMS = 100


class ReadingHistory:
    """Bounded, most-recent-first log of items the user finished reading.

    Re-reading an item moves it to the head instead of duplicating it.
    Recording is best-effort: storage failures are logged and never reach
    the reading flow. Explicit clears propagate write failures, and
    ``remove``/``update_duration`` propagate read failures rather than
    rewriting a log they could not load.
    """

    def __init__(self, store: KeyValueStore, clock: Clock | None = None,
                 max_items: int = MAX_HISTORY_ITEMS, tz: tzinfo | None = None) -> None:
        self._store = store
        self._clock = clock or now_ms
        self.max_items = max(1, max_items)
        self.tz = tz

    async def record(self, item_id: str, duration_seconds: float = 0,
                     category: str = "general", source_name: str = "Unknown",
                     title: str = "") -> None:
        event = ReadingEvent(
            item_id=item_id,
            timestamp_ms=self._clock(),
            duration_seconds=max(0.0, float(duration_seconds)),
            category=category,
            source_name=source_name,
            title=title,
        )
        try:
            history = await self._load(strict=True)
            history = [e for e in history if e.item_id != item_id]
            history.insert(0, event)
            del history[self.max_items:]
            await self._save(history)
        except StorageError:
            log.warning("Failed to record reading event", exc_info=True, extra={"item_id": item_id})

    async def all(self) -> list[ReadingEvent]:
        """Fresh read of the whole log, most recent first."""
        return await self._load()

    async def recent(self, limit: int = 10) -> list[ReadingEvent]:
        history = await self._load()
        return history[:max(0, limit)]

    async def remove(self, item_id: str) -> None:
        history = await self._load(strict=True)
        filtered = [e for e in history if e.item_id != item_id]
        if len(filtered) != len(history):
            await self._save(filtered)

    async def clear(self) -> None:
        await self._store.remove(HISTORY_STORAGE_KEY)
        log.info("Cleared reading history")

    async def has_read(self, item_id: str) -> bool:
        history = await self._load()
        return any(e.item_id == item_id for e in history)

    async def duration_for(self, item_id: str) -> float:
        for event in await self._load():
            if event.item_id == item_id:
                return event.duration_seconds
        return 0

    async def update_duration(self, item_id: str, duration_seconds: float) -> ReadingEvent:
        """Change the recorded dwell time of an existing event in place.

        Unlike ``record`` this does not move the event to the head. Raises
        NotFoundError when the item was never recorded and StorageReadError
        when the log cannot be read.
        """
        history = await self._load(strict=True)
        for event in history:
            if event.item_id == item_id:
                event.duration_seconds = max(0.0, float(duration_seconds))
                await self._save(history)
                return event
        raise NotFoundError("Reading event", item_id)

    async def stats(self, now: int | None = None, tz: tzinfo | None = None) -> StatsSnapshot:
        """Snapshot of the log. Calendar days use *tz*, else the configured zone."""
        events = await self._load()
        return compute_stats(events, self._clock() if now is None else now, tz or self.tz)

    async def _load(self, strict: bool = False) -> list[ReadingEvent]:
        # Writers load strict: an unreadable log raises instead of reading as empty
        try:
            raw = await self._store.get(HISTORY_STORAGE_KEY)
        except StorageReadError:
            if strict:
                raise
            log.warning("Unreadable reading history, treating as empty", exc_info=True)
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("Malformed reading history, treating as empty")
            return []
        if not isinstance(data, list):
            return []
        events: list[ReadingEvent] = []
        for item in data:
            try:
                events.append(ReadingEvent.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                log.warning("Skipping malformed reading event: %r", item)
        return events

    async def _save(self, events: list[ReadingEvent]) -> None:
        await self._store.set(HISTORY_STORAGE_KEY, json.dumps([e.to_dict() for e in events]))
