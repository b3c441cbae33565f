"""NewsAPI.org page source.

Category listings go to ``/top-headlines``, keyword searches to
``/everything``. Requires an API key from https://newsapi.org/register,
set via config ``newsapi.api_key`` or the ``NEWSAPI_KEY`` env var.
"""
from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from urllib.parse import urlencode

from newsreader.models.domain import RequestKind, ResponsePage
from newsreader.sources.base import PageSource, ServerError, TransportError

log = logging.getLogger(__name__)

_BASE_URL = "https://newsapi.org/v2"


class NewsAPISource(PageSource):
    def __init__(
        self, api_key: str, base_url: str = _BASE_URL, country: str = "us",
        page_size: int = 20, timeout: float = 10,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._country = country
        self._page_size = page_size
        self._timeout = timeout

    def build_url(self, kind: RequestKind, discriminator: str, page: int) -> str:
        if kind is RequestKind.CATEGORY:
            params = urlencode({
                "country": self._country,
                "category": discriminator,
                "pageSize": self._page_size,
                "page": page,
            })
            return f"{self._base_url}/top-headlines?{params}"
        params = urlencode({
            "q": discriminator,
            "pageSize": self._page_size,
            "sortBy": "publishedAt",
            "page": page,
        })
        return f"{self._base_url}/everything?{params}"

    async def fetch(self, kind: RequestKind, discriminator: str, page: int) -> ResponsePage:
        url = self.build_url(kind, discriminator, page)
        data = await asyncio.to_thread(self._get_json, url)
        if data.get("status") != "ok":
            raise ServerError(None, str(data.get("message") or "NewsAPI returned an error"))
        try:
            page_data = ResponsePage.from_dict(data)
        except (ValueError, TypeError) as e:
            raise ServerError(None, "NewsAPI returned a malformed response") from e
        log.info("NewsAPI %s %r page %d returned %d articles",
                 kind.value, discriminator, page, len(page_data.items),
                 extra={"request_kind": kind.value})
        return page_data

    def _get_json(self, url: str) -> dict:
        req = urllib.request.Request(url, headers={
            "User-Agent": "NewsReader/1.0",
            "X-Api-Key": self._api_key,
        })
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            raise ServerError(e.code, self._error_message(e)) from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise TransportError(str(e)) from e
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise ServerError(None, "NewsAPI returned a malformed response") from e
        if not isinstance(data, dict):
            raise ServerError(None, "NewsAPI returned a malformed response")
        return data

    @staticmethod
    def _error_message(err: urllib.error.HTTPError) -> str:
        """Pull NewsAPI's ``message`` out of an error body when there is one."""
        try:
            payload = json.loads(err.read().decode("utf-8"))
        except (ValueError, OSError, AttributeError):
            return f"NewsAPI returned HTTP {err.code}"
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return f"NewsAPI returned HTTP {err.code}"
