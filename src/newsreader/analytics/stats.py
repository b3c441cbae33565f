"""Reading statistics reduced from the reading event log.

Everything here is pure: the event list, the current time and the timezone
that defines calendar days all come in as arguments, so day boundaries can be
pinned exactly in tests. Nothing is memoized; the log is capped small enough
that recomputing on every request is cheap.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable, Sequence

from newsreader.models.domain import ReadingEvent, StatsSnapshot

DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS
MONTH_MS = 30 * DAY_MS

CHART_DAYS = 7


def local_datetime(timestamp_ms: int, tz: tzinfo | None = None) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz or timezone.utc)


def day_key(day: date) -> str:
    """``YYYY-MM-DD`` for a calendar day."""
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def compute_streaks(days: Iterable[date], today: date) -> tuple[int, int]:
    """Return ``(current, longest)`` consecutive-day streaks.

    The current streak is anchored on *today* if it has activity, otherwise
    on yesterday; with neither it is 0. Streaks count calendar days, so
    reading at 23:59 and again at 00:01 spans two days.
    """
    active = set(days)
    if not active:
        return 0, 0

    current = 0
    yesterday = today - timedelta(days=1)
    anchor = today if today in active else yesterday if yesterday in active else None
    if anchor is not None:
        current = 1
        check = anchor - timedelta(days=1)
        while check in active:
            current += 1
            check -= timedelta(days=1)

    ordered = sorted(active, reverse=True)
    longest = 0
    running = 1
    for newer, older in zip(ordered, ordered[1:]):
        if (newer - older).days == 1:
            running += 1
        else:
            longest = max(longest, running)
            running = 1
    longest = max(longest, running)
    return current, longest


def _favorite(counts: dict[str, int]) -> str:
    # Ties go to whichever key was seen first
    best = "None"
    best_count = 0
    for key, count in counts.items():
        if count > best_count:
            best, best_count = key, count
    return best


def _empty_day_buckets(today: date) -> dict[str, int]:
    return {day_key(today - timedelta(days=i)): 0 for i in range(CHART_DAYS - 1, -1, -1)}


def _empty_snapshot(today: date) -> StatsSnapshot:
    return StatsSnapshot(
        reading_by_day=_empty_day_buckets(today),
        reading_by_hour={hour: 0 for hour in range(24)},
    )


def compute_stats(events: Sequence[ReadingEvent], now: int,
                  tz: tzinfo | None = None) -> StatsSnapshot:
    """Fold the reading log into a StatsSnapshot.

    *now* is epoch milliseconds; *tz* defines calendar days and hours
    (UTC when omitted). Period counts are sliding windows measured from
    *now*, not calendar-aligned.
    """
    tz = tz or timezone.utc
    today = local_datetime(now, tz).date()

    if not events:
        return _empty_snapshot(today)

    total_count = len(events)
    total_minutes = sum(e.duration_seconds for e in events) / 60
    avg_minutes = total_minutes / total_count

    today_count = week_count = month_count = 0
    categories: dict[str, int] = defaultdict(int)
    sources: dict[str, int] = defaultdict(int)
    by_day = _empty_day_buckets(today)
    by_hour = {hour: 0 for hour in range(24)}
    active_days: set[date] = set()

    for event in events:
        age = now - event.timestamp_ms
        if age < DAY_MS:
            today_count += 1
        if age < WEEK_MS:
            week_count += 1
        if age < MONTH_MS:
            month_count += 1

        categories[event.category or "general"] += 1
        sources[event.source_name or "Unknown"] += 1

        local = local_datetime(event.timestamp_ms, tz)
        active_days.add(local.date())
        by_hour[local.hour] += 1
        key = day_key(local.date())
        if key in by_day:
            by_day[key] += 1

    current, longest = compute_streaks(active_days, today)

    return StatsSnapshot(
        total_count=total_count,
        total_minutes=total_minutes,
        avg_minutes=avg_minutes,
        current_streak=current,
        longest_streak=longest,
        today=today_count,
        this_week=week_count,
        this_month=month_count,
        favorite_category=_favorite(categories),
        favorite_source=_favorite(sources),
        categories=dict(categories),
        sources=dict(sources),
        reading_by_day=by_day,
        reading_by_hour=by_hour,
    )
