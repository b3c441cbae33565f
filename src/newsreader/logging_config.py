"""Log output for newsreader: readable lines locally, JSON lines in CI.

Modules log through ``logging.getLogger(__name__)`` and attach request
context with ``extra=``, e.g.::

    log.info("Using cached page", extra={"cache_key": key, "request_kind": "category"})

Only the fields in ``JSONFormatter.CONTEXT_FIELDS`` are carried into JSON output.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, Any

_TEXT_FORMAT = "%(asctime)s %(levelname)-5s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    {"ts": "2026-03-15T12:00:00.120Z", "level": "WARNING", "logger": "newsreader.fetch.content",
     "msg": "Network failed, using stale cache ...", "file": "content.py:93",
     "cache_key": "@news_cache_category_technology_page1", "request_kind": "category"}
    """

    CONTEXT_FIELDS = ("cache_key", "request_kind", "item_id", "duration_ms")

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, timezone.utc)
        entry: dict[str, Any] = {
            "ts": ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.levelno >= logging.WARNING:
            entry["file"] = f"{record.filename}:{record.lineno}"
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["error"] = str(exc)
            entry["error_type"] = type(exc).__name__
        entry.update({
            name: getattr(record, name)
            for name in self.CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        })
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", json_format: bool | None = None,
                      stream: IO[str] | None = None) -> None:
    """Replace the root handlers with a single stream handler.

    ``json_format=None`` picks JSON when ``CI`` or ``NEWSREADER_LOG_JSON`` is
    set in the environment.
    """
    if json_format is None:
        json_format = bool(os.environ.get("CI") or os.environ.get("NEWSREADER_LOG_JSON"))

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for old in root.handlers[:]:
        root.removeHandler(old)
    root.addHandler(handler)
