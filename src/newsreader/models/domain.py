from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

# Epoch milliseconds. Services take one of these instead of reading the
# system clock so tests can pin day boundaries.
Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


CATEGORIES: tuple[str, ...] = (
    "general", "business", "technology", "sports",
    "health", "entertainment", "science",
)


class RequestKind(Enum):
    CATEGORY = "category"
    SEARCH = "search"


@dataclass(slots=True)
class Article:
    url: str
    title: str = ""
    source_name: str = "Unknown"
    source_id: str | None = None
    author: str | None = None
    description: str | None = None
    url_to_image: str | None = None
    published_at: str = ""
    content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": {"id": self.source_id, "name": self.source_name},
            "author": self.author,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "urlToImage": self.url_to_image,
            "publishedAt": self.published_at,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Article:
        """Build from the NewsAPI article shape (also what ``to_dict`` writes)."""
        source = data.get("source") or {}
        return cls(
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            source_name=str(source.get("name") or "Unknown"),
            source_id=source.get("id"),
            author=data.get("author"),
            description=data.get("description"),
            url_to_image=data.get("urlToImage"),
            published_at=str(data.get("publishedAt") or ""),
            content=data.get("content"),
        )


@dataclass(slots=True)
class ResponsePage:
    items: list[Article] = field(default_factory=list)
    total_count: int = 0
    status: str = "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "totalResults": self.total_count,
            "articles": [a.to_dict() for a in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponsePage:
        articles = data.get("articles")
        if not isinstance(articles, list):
            raise ValueError("response page has no article list")
        return cls(
            items=[Article.from_dict(a) for a in articles if isinstance(a, dict)],
            total_count=int(data.get("totalResults") or 0),
            status=str(data.get("status") or "ok"),
        )


@dataclass(slots=True)
class CacheEntry:
    payload: ResponsePage
    stored_at: int

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.payload.to_dict(), "timestamp": self.stored_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(payload=ResponsePage.from_dict(data["data"]), stored_at=int(data["timestamp"]))


@dataclass(slots=True)
class CacheIndexEntry:
    key: str
    stored_at: int
    kind: str = ""
    discriminator: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "timestamp": self.stored_at,
            "kind": self.kind,
            "discriminator": self.discriminator,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheIndexEntry:
        return cls(
            key=str(data["key"]),
            stored_at=int(data["timestamp"]),
            kind=str(data.get("kind") or ""),
            discriminator=str(data.get("discriminator") or ""),
        )


@dataclass(slots=True)
class ReadingEvent:
    item_id: str
    timestamp_ms: int
    duration_seconds: float = 0
    category: str = "general"
    source_name: str = "Unknown"
    title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.item_id,
            "readAt": self.timestamp_ms,
            "readingTime": self.duration_seconds,
            "category": self.category,
            "source": self.source_name,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReadingEvent:
        return cls(
            item_id=str(data["url"]),
            timestamp_ms=int(data["readAt"]),
            duration_seconds=float(data.get("readingTime") or 0),
            category=str(data.get("category") or ""),
            source_name=str(data.get("source") or ""),
            title=str(data.get("title") or ""),
        )


@dataclass(slots=True)
class StatsSnapshot:
    total_count: int = 0
    total_minutes: float = 0.0
    avg_minutes: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    today: int = 0
    this_week: int = 0
    this_month: int = 0
    favorite_category: str = "None"
    favorite_source: str = "None"
    categories: dict[str, int] = field(default_factory=dict)
    sources: dict[str, int] = field(default_factory=dict)
    # YYYY-MM-DD -> count for the last 7 calendar days
    reading_by_day: dict[str, int] = field(default_factory=dict)
    # 0-23 -> count
    reading_by_hour: dict[int, int] = field(default_factory=dict)
