"""
Reference-timezone calendar helpers.

All day-bucketed computations key days in America/Los_Angeles (PST/PDT with
DST). Instants are stored and compared in UTC; only the day key is local.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

REFERENCE_TZ = ZoneInfo("America/Los_Angeles")

DAY_KEY_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime:
    """Current instant, tz-aware UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(moment: datetime) -> datetime:
    """Normalize to tz-aware UTC; naive values are taken to already be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    return ensure_utc(now)


def local_date(moment: datetime) -> date:
    return ensure_utc(moment).astimezone(REFERENCE_TZ).date()


def day_key(moment: datetime) -> str:
    """Map an instant to its YYYY-MM-DD calendar day in the reference timezone."""
    return local_date(moment).strftime(DAY_KEY_FORMAT)


def today(now: Optional[datetime] = None) -> str:
    return day_key(resolve_now(now))


def yesterday(now: Optional[datetime] = None) -> str:
    # Calendar arithmetic: 23h and 25h DST days still yield the previous date.
    return (local_date(resolve_now(now)) - timedelta(days=1)).strftime(DAY_KEY_FORMAT)


def parse_day_key(value: str) -> date:
    """Parse a canonical zero-padded YYYY-MM-DD key; raises ValueError otherwise."""
    parsed = datetime.strptime(value, DAY_KEY_FORMAT).date()
    # strptime also accepts "2025-12-5", which never matches a stored key
    if parsed.strftime(DAY_KEY_FORMAT) != value:
        raise ValueError(f"day key must be zero-padded YYYY-MM-DD: {value!r}")
    return parsed


def display_date(day: str) -> str:
    """Human label for a day key, e.g. 'Monday, October 19, 2026'."""
    parsed = parse_day_key(day)
    return f"{parsed.strftime('%A, %B')} {parsed.day}, {parsed.year}"
