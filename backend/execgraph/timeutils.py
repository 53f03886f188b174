"""UTC helpers shared by the engines."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return timezone-aware UTC now (avoids deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes; stores without tz support return those."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_day(value: datetime) -> date:
    return as_utc(value).date()


def previous_day(day: date) -> date:
    return day - timedelta(days=1)


def is_past(value: datetime | None, now: datetime) -> bool:
    """True when ``value`` is set and strictly before ``now``."""
    if value is None:
        return False
    return as_utc(value) < as_utc(now)
