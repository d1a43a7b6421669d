"""
Day-granularity helpers.

All progress dates are timezone-aware UTC. A "day" is the UTC calendar
day; start_of_day() maps any instant to UTC midnight. SQLite hands back
naive datetimes, which are treated as UTC.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def start_of_day(value: datetime) -> datetime:
    v = as_utc(value)
    return datetime(v.year, v.month, v.day, tzinfo=timezone.utc)


def same_day(a: datetime, b: datetime) -> bool:
    return start_of_day(a) == start_of_day(b)


def days_between(start: datetime, end: datetime) -> int:
    """Whole calendar days from start to end, floored at 0."""
    return max((start_of_day(end) - start_of_day(start)).days, 0)


def monday_of_week(value: datetime) -> datetime:
    day = start_of_day(value)
    return day - timedelta(days=day.weekday())


def clamp_not_future(value: datetime, now: datetime) -> datetime:
    v = as_utc(value)
    n = as_utc(now)
    return n if v > n else v
