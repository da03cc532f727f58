"""
UTC time helpers.

Every timestamp column stores naive UTC; these helpers are the only place
that reads the clock or converts to/from strings.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current instant as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """Current calendar day in UTC. Ticket counters roll over on this boundary."""
    return utcnow().date()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> naive UTC datetime.

    Blank input gives None. Offsets (including a trailing Z) are converted to
    UTC; a string without offset is already UTC.
    Raises ValueError on anything fromisoformat rejects.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Naive-UTC (or aware) datetime -> 'YYYY-MM-DDTHH:MM:SSZ'."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return None if d is None else d.isoformat()


def day_bounds(day: Optional[date] = None) -> tuple[datetime, datetime]:
    """[start, end) of a UTC calendar day."""
    start = datetime.combine(day or today(), time.min)
    return start, start + timedelta(days=1)


def month_bounds(day: Optional[date] = None) -> tuple[datetime, datetime]:
    """[start, end) of the UTC calendar month containing `day`."""
    day = day or today()
    start = datetime(day.year, day.month, 1)
    next_year, next_month = divmod(day.month, 12)
    return start, datetime(day.year + next_year, next_month + 1, 1)
