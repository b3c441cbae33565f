from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

_VALID_BACKENDS = ("memory", "sqlite")


class ConfigError(Exception):
    pass


class ReaderConfig:
    def __init__(
        self,
        newsapi: dict[str, Any],
        storage: dict[str, Any] | None = None,
        history: dict[str, Any] | None = None,
        analytics: dict[str, Any] | None = None,
    ) -> None:
        self.newsapi = newsapi
        self.storage = storage or {"backend": "memory"}
        self.history = history or {}
        self.analytics = analytics or {}

    @property
    def api_key(self) -> str:
        # Env var wins so keys never have to live in the JSON file
        return os.environ.get("NEWSAPI_KEY") or str(self.newsapi.get("api_key") or "")

    @property
    def base_url(self) -> str:
        return str(self.newsapi.get("base_url") or "https://newsapi.org/v2")

    @property
    def country(self) -> str:
        return str(self.newsapi.get("country") or "us")

    @property
    def page_size(self) -> int:
        return int(self.newsapi.get("page_size", 20))

    @property
    def timeout_seconds(self) -> float:
        return float(self.newsapi.get("timeout_seconds", 10))

    @property
    def history_max_items(self) -> int:
        return int(self.history.get("max_items", 100))

    @property
    def timezone_name(self) -> str:
        return str(self.analytics.get("timezone") or "UTC")

    def validate(self) -> list[str]:
        errors: list[str] = []

        for key in ("base_url", "page_size", "timeout_seconds"):
            if key not in self.newsapi:
                errors.append(f"newsapi missing required field '{key}'")

        page_size = self.newsapi.get("page_size")
        if isinstance(page_size, int) and not 1 <= page_size <= 100:
            errors.append(f"newsapi.page_size must be between 1 and 100, got {page_size}")

        timeout = self.newsapi.get("timeout_seconds")
        if isinstance(timeout, (int, float)) and timeout <= 0:
            errors.append(f"newsapi.timeout_seconds must be positive, got {timeout}")

        backend = self.storage.get("backend", "memory")
        if backend not in _VALID_BACKENDS:
            errors.append(f"Unknown storage backend: {backend!r}")
        if backend == "sqlite" and not self.storage.get("path"):
            errors.append("storage.path is required for the sqlite backend")

        max_items = self.history.get("max_items", 100)
        if not isinstance(max_items, int) or max_items < 1:
            errors.append(f"history.max_items must be a positive integer, got {max_items!r}")

        tz = self.analytics.get("timezone")
        if tz:
            try:
                from zoneinfo import ZoneInfo
                ZoneInfo(tz)
            except (KeyError, ValueError):
                errors.append(f"Unknown analytics timezone: {tz!r}")

        if errors:
            raise ConfigError("Configuration validation failed:\n  " + "\n  ".join(errors))

        return []


def load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def load_reader_config(config_dir: Path) -> ReaderConfig:
    if not config_dir.is_dir():
        raise ConfigError(f"Config directory not found: {config_dir}")

    data = load_json(config_dir / "reader.json")
    if "newsapi" not in data:
        raise ConfigError("Configuration validation failed:\n  Missing section: newsapi")
    cfg = ReaderConfig(
        newsapi=data["newsapi"],
        storage=data.get("storage"),
        history=data.get("history"),
        analytics=data.get("analytics"),
    )
    cfg.validate()
    return cfg
