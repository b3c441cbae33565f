from __future__ import annotations

import logging
import time

from newsreader.memory.cache import ContentCache
from newsreader.models.domain import RequestKind, ResponsePage
from newsreader.models.errors import NetworkError
from newsreader.sources.base import PageSource, ServerError, SourceError

log = logging.getLogger(__name__)

_OFFLINE_MESSAGE = "Failed to fetch news. Please check your connection."


class ContentFetcher:
    """Offline-first page loader.

    Only page 1 of a request is cached. Deeper pages shift under concurrent
    cache/network use, so they are always fetched live and fail loudly.
    When the network fails on page 1, a cached copy of any age is served
    instead of an error.
    """

    def __init__(self, source: PageSource, cache: ContentCache) -> None:
        self._source = source
        self._cache = cache

    @property
    def source(self) -> PageSource:
        return self._source

    async def fetch_page(self, kind: RequestKind | str, discriminator: str,
                         page: int = 1, use_cache: bool = True) -> ResponsePage:
        """Return one page of content for ``(kind, discriminator)``.

        ``use_cache=False`` skips the fresh-cache short-circuit (pull to
        refresh) but still stores page 1 and still falls back to stale data.
        Raises NetworkError only when no usable data exists at all.
        """
        kind = RequestKind(kind)
        key = self._cache.key(kind, f"{discriminator}_page{page}")
        cacheable = page == 1

        # peek, not get(): get() would evict the copy _fallback serves
        if cacheable and use_cache:
            entry = await self._cache.peek(key)
            if entry is not None and self._cache.is_fresh(entry):
                log.info("Using cached page for %s %r", kind.value, discriminator,
                         extra={"cache_key": key, "request_kind": kind.value})
                return entry.payload

        started = time.monotonic()
        try:
            response = await self._source.fetch(kind, discriminator, page)
        except SourceError as e:
            return await self._fallback(key, kind, discriminator, cacheable, e)

        duration_ms = int((time.monotonic() - started) * 1000)
        log.debug("Fetched %s %r page %d in %dms", kind.value, discriminator, page, duration_ms,
                  extra={"request_kind": kind.value, "duration_ms": duration_ms})
        if cacheable:
            await self._cache.put(key, response, kind=kind, discriminator=discriminator)
        return response

    async def top_headlines(self, category: str = "general", page: int = 1,
                            use_cache: bool = True) -> ResponsePage:
        return await self.fetch_page(RequestKind.CATEGORY, category, page, use_cache)

    async def search(self, query: str, page: int = 1, use_cache: bool = True) -> ResponsePage:
        return await self.fetch_page(RequestKind.SEARCH, query, page, use_cache)

    async def _fallback(self, key: str, kind: RequestKind, discriminator: str,
                        cacheable: bool, error: SourceError) -> ResponsePage:
        if cacheable:
            stale = await self._cache.get_ignoring_expiry(key)
            if stale is not None:
                log.warning("Network failed, using stale cache for %s %r: %s",
                            kind.value, discriminator, error,
                            extra={"cache_key": key, "request_kind": kind.value})
                return stale

        if isinstance(error, ServerError):
            raise NetworkError(error.message, reason=NetworkError.SERVER, status=error.status) from error
        raise NetworkError(_OFFLINE_MESSAGE, reason=NetworkError.OFFLINE) from error
