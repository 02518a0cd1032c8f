"""
Date/time helpers — framework-agnostic.

Every timestamp the auth flows compare is a timezone-aware UTC datetime;
cache records carry integer epoch seconds.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def expires_in(seconds: int, now: Optional[datetime] = None) -> datetime:
    """Return ``now + seconds`` (``now`` defaults to the current UTC time)."""
    return (now or utcnow()) + timedelta(seconds=seconds)


def to_epoch(value: datetime) -> int:
    """Convert an aware datetime to integer Unix epoch seconds."""
    return int(value.timestamp())


def seconds_until(value: datetime, now: Optional[datetime] = None) -> int:
    """Whole seconds from *now* until *value*, never negative."""
    delta = ensure_utc(value) - (now or utcnow())
    return max(0, int(delta.total_seconds()))


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive UTC by default)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a date/time value into a timezone-aware UTC datetime.

    Accepts:
    - ``None`` → ``None``
    - ``datetime`` → normalised to UTC
    - ``int`` / ``float`` / numeric ``str`` → treated as Unix epoch seconds
    - Any ISO 8601 string (``"Z"`` suffix supported)

    Returns:
        A timezone-aware ``datetime`` in UTC, or ``None`` if *value* is ``None``
        or cannot be parsed.
    """
    if value is None:
        return None
    try:
        if isinstance(value, datetime):
            return ensure_utc(value)
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        raw = str(value)
        if raw.isdigit():
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(raw))
    except (ValueError, OSError, OverflowError):
        return None


def humanize_seconds(seconds: int) -> str:
    """Render a short duration for user-facing copy (``"90 seconds"``, ``"5 minutes"``)."""
    if seconds % 60 == 0 and seconds >= 60:
        minutes = seconds // 60
        return f"{minutes} minute" + ("" if minutes == 1 else "s")
    return f"{seconds} second" + ("" if seconds == 1 else "s")
