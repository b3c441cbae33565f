"""Response-page cache with a fixed 24h TTL and a side index.

Every cache entry lives under its own key in the shared key-value store and
has exactly one row in the index stored at ``CACHE_METADATA_KEY``. The index
is what ``clear_all``, ``clear_expired`` and ``stats`` walk, so those never
have to scan the whole namespace.

The store has no transactions. An entry change and its index change are
applied together by ``_commit`` (entry first, index second) and nothing
outside this module touches either half. What remains is the two-write gap:
a ``put`` interleaved with a concurrent ``clear_all`` can leave an entry with
no index row, or an index row whose entry was just removed. Reads treat a
missing entry as a miss and the next ``clear_expired`` / ``clear`` drops the
stale row. A lost index row comes back on the next ``put`` of that key.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from newsreader.memory.store import KeyValueStore
from newsreader.models.domain import (
    CacheEntry,
    CacheIndexEntry,
    Clock,
    RequestKind,
    ResponsePage,
    now_ms,
)
from newsreader.models.errors import StorageError, StorageReadError

log = logging.getLogger(__name__)

CACHE_PREFIX = "@news_cache_"
CACHE_METADATA_KEY = "@news_cache_metadata"
CACHE_TTL_MS = 24 * 60 * 60 * 1000


@dataclass(slots=True)
class CacheStats:
    count: int = 0
    oldest_stored_at: int | None = None
    total_bytes: int = 0


class ContentCache:
    def __init__(self, store: KeyValueStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or now_ms

    @staticmethod
    def key(kind: RequestKind | str, discriminator: str) -> str:
        """Deterministic cache key for a request shape.

        ``kind`` is limited to the RequestKind values so a discriminator can
        never spill into another kind's key space.
        """
        kind_value = RequestKind(kind).value
        return f"{CACHE_PREFIX}{kind_value}_{discriminator}"

    @staticmethod
    def is_expired(stored_at: int, now: int) -> bool:
        return now - stored_at >= CACHE_TTL_MS

    # ── Public contract ──────────────────────────────────────────

    async def put(self, key: str, payload: ResponsePage,
                  kind: RequestKind | str = "", discriminator: str = "") -> None:
        """Store *payload* under *key* and upsert its index row.

        Best-effort: a storage failure is logged and swallowed so the fetch
        that produced the payload still succeeds.
        """
        stored_at = self._clock()
        kind_value = kind.value if isinstance(kind, RequestKind) else str(kind)
        entry = CacheEntry(payload=payload, stored_at=stored_at)
        row = CacheIndexEntry(key=key, stored_at=stored_at, kind=kind_value, discriminator=discriminator)
        try:
            await self._commit(key, entry, row)
        except StorageError:
            log.warning("Failed to cache page for %s", key, exc_info=True, extra={"cache_key": key})

    async def get(self, key: str) -> ResponsePage | None:
        """Fresh read: expired entries are deleted and reported as a miss."""
        entry = await self._read_entry(key)
        if entry is None:
            return None
        if self.is_expired(entry.stored_at, self._clock()):
            log.debug("Cache entry expired: %s", key, extra={"cache_key": key})
            await self.clear(key)
            return None
        return entry.payload

    async def get_ignoring_expiry(self, key: str) -> ResponsePage | None:
        """Read regardless of age. Only the offline fallback path uses this."""
        entry = await self._read_entry(key)
        return entry.payload if entry is not None else None

    async def peek(self, key: str) -> CacheEntry | None:
        """Read the whole entry without the TTL check and without evicting."""
        return await self._read_entry(key)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return not self.is_expired(entry.stored_at, self._clock())

    async def is_valid(self, key: str) -> bool:
        return await self.get(key) is not None

    async def clear(self, key: str) -> None:
        try:
            await self._commit(key, None, None)
        except StorageError:
            log.warning("Failed to clear cache entry %s", key, exc_info=True, extra={"cache_key": key})

    async def clear_expired(self) -> int:
        """Drop every index row past the TTL along with its entry.

        Returns the number of rows removed. Running it twice in a row is the
        same as running it once.
        """
        rows = await self._load_index()
        now = self._clock()
        expired = [r for r in rows if self.is_expired(r.stored_at, now)]
        if not expired:
            return 0

        removed: set[str] = set()
        for row in expired:
            try:
                await self._store.remove(row.key)
                removed.add(row.key)
            except StorageError:
                log.warning("Failed to remove expired entry %s", row.key, exc_info=True,
                            extra={"cache_key": row.key})

        # Rows whose entry could not be removed stay indexed so the next
        # pass retries them.
        try:
            await self._save_index([r for r in rows if r.key not in removed])
        except StorageError:
            log.warning("Failed to rewrite cache index after expiry sweep", exc_info=True)
            return 0
        log.info("Cleared %d expired cache entries", len(removed))
        return len(removed)

    async def clear_all(self) -> None:
        """Delete every indexed entry, then the index itself.

        User-initiated, so StorageReadError and StorageWriteError propagate
        to the caller.
        """
        rows = await self._load_index(strict=True)
        for row in rows:
            await self._store.remove(row.key)
        await self._store.remove(CACHE_METADATA_KEY)
        log.info("Cleared all %d cache entries", len(rows))

    async def stats(self) -> CacheStats:
        rows = await self._load_index()
        total_bytes = 0
        for row in rows:
            try:
                raw = await self._store.get(row.key)
            except StorageReadError:
                log.warning("Skipping unreadable cache entry %s", row.key, extra={"cache_key": row.key})
                continue
            if raw:
                total_bytes += len(raw.encode("utf-8"))
        oldest = min((r.stored_at for r in rows), default=None)
        return CacheStats(count=len(rows), oldest_stored_at=oldest, total_bytes=total_bytes)

    async def index(self) -> list[CacheIndexEntry]:
        return await self._load_index()

    # ── Entry + index write unit ─────────────────────────────────

    async def _commit(self, key: str, entry: CacheEntry | None,
                      row: CacheIndexEntry | None) -> None:
        """Apply an entry change and the matching index change together.

        ``entry=None`` deletes the entry and its row; otherwise the entry is
        replaced wholesale and *row* is upserted (replaced in place when the
        key is already indexed, appended otherwise). The index is read before
        the entry is touched; if it cannot be read nothing is written.
        """
        rows = await self._load_index(strict=True)
        if entry is None:
            await self._store.remove(key)
        else:
            await self._store.set(key, json.dumps(entry.to_dict()))

        if row is None:
            updated = [r for r in rows if r.key != key]
            if len(updated) == len(rows):
                return
        else:
            updated = []
            replaced = False
            for existing in rows:
                if existing.key == key:
                    if not replaced:
                        updated.append(row)
                        replaced = True
                    continue
                updated.append(existing)
            if not replaced:
                updated.append(row)
        await self._save_index(updated)

    # ── Decoding helpers ─────────────────────────────────────────

    async def _read_entry(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._store.get(key)
        except StorageReadError:
            log.warning("Unreadable cache entry %s", key, exc_info=True, extra={"cache_key": key})
            return None
        if not raw:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError):
            log.warning("Malformed cache entry %s, treating as miss", key, extra={"cache_key": key})
            return None

    async def _load_index(self, strict: bool = False) -> list[CacheIndexEntry]:
        """Decode the index rows. A malformed index decodes as empty.

        With *strict* an unreadable index raises StorageReadError instead of
        reading as empty. Every path that rewrites the index reads it strict.
        """
        try:
            raw = await self._store.get(CACHE_METADATA_KEY)
        except StorageReadError:
            if strict:
                raise
            log.warning("Unreadable cache index", exc_info=True)
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("Malformed cache index, ignoring it")
            return []
        if not isinstance(data, list):
            return []
        rows: list[CacheIndexEntry] = []
        for item in data:
            try:
                rows.append(CacheIndexEntry.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                log.warning("Skipping malformed cache index row: %r", item)
        return rows

    async def _save_index(self, rows: list[CacheIndexEntry]) -> None:
        await self._store.set(CACHE_METADATA_KEY, json.dumps([r.to_dict() for r in rows]))
