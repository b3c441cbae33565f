from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo

from newsreader.fetch.content import ContentFetcher
from newsreader.history.log import ReadingHistory
from newsreader.memory.cache import ContentCache
from newsreader.memory.store import InMemoryKeyValueStore, KeyValueStore, SQLiteKeyValueStore
from newsreader.models.config import ReaderConfig
from newsreader.models.domain import Clock, now_ms
from newsreader.sources.base import PageSource
from newsreader.sources.newsapi import NewsAPISource

log = logging.getLogger("newsreader")


@dataclass
class ReaderServices:
    """Everything the UI layer talks to, built once and passed around."""
    store: KeyValueStore
    cache: ContentCache
    fetcher: ContentFetcher
    history: ReadingHistory
    timezone: tzinfo


def build_store(cfg: ReaderConfig, root: Path | None = None) -> KeyValueStore:
    backend = cfg.storage.get("backend", "memory")
    if backend == "sqlite":
        path = Path(cfg.storage["path"])
        if not path.is_absolute() and root is not None:
            path = root / path
        log.info("Using SQLite key-value store at %s", path)
        return SQLiteKeyValueStore(path)
    log.info("Using in-memory key-value store")
    return InMemoryKeyValueStore()


def build_services(
    cfg: ReaderConfig,
    root: Path | None = None,
    store: KeyValueStore | None = None,
    source: PageSource | None = None,
    clock: Clock | None = None,
) -> ReaderServices:
    """Wire store -> cache -> source -> fetcher -> history.

    Any collaborator can be passed in to replace the configured one.
    """
    clock = clock or now_ms
    store = store or build_store(cfg, root)
    if source is None:
        if not cfg.api_key:
            log.warning("No NewsAPI key configured; network fetches will fail and only cached pages load")
        source = NewsAPISource(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            country=cfg.country,
            page_size=cfg.page_size,
            timeout=cfg.timeout_seconds,
        )
    cache = ContentCache(store, clock=clock)
    tz = ZoneInfo(cfg.timezone_name)
    return ReaderServices(
        store=store,
        cache=cache,
        fetcher=ContentFetcher(source, cache),
        history=ReadingHistory(store, clock=clock, max_items=cfg.history_max_items, tz=tz),
        timezone=tz,
    )
