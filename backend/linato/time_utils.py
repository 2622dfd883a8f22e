from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_date(tz_name: str = "UTC", now: Optional[datetime] = None) -> date:
    """
    Calendar date of the restaurant for a UTC-naive instant.

    Receipt sequences and daily reports are keyed by this date, so a
    late-night order belongs to the local day it was rung up on.
    """
    instant = now or utcnow()
    return instant.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).date()


def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a 'YYYY-MM-DD' string.

    - None / "" -> None
    - anything else malformed raises ValueError
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def business_day_bounds(day: date, tz_name: str = "UTC") -> tuple[datetime, datetime]:
    """UTC-naive [start, end) covering one local business day."""
    zone = ZoneInfo(tz_name)
    start_local = datetime(day.year, day.month, day.day, tzinfo=zone)
    end_local = start_local + timedelta(days=1)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )
