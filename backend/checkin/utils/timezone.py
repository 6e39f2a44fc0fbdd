"""
Timezone utilities for converting between UTC and local times.

All database timestamps are stored as naive UTC. Displays and
notifications render them in the venue's local timezone.
"""

from datetime import datetime

import pytz

from checkin.config import get_settings

UTC_TZ = pytz.UTC


def utc_now() -> datetime:
    """Current time in UTC, timezone-naive (for database storage)."""
    return datetime.now(UTC_TZ).replace(tzinfo=None)


def epoch_millis(dt: datetime | None = None) -> int:
    """Milliseconds since the epoch for a naive-UTC or aware datetime."""
    if dt is None:
        dt = datetime.now(UTC_TZ)
    elif dt.tzinfo is None:
        dt = UTC_TZ.localize(dt)
    return int(dt.timestamp() * 1000)


def from_utc(utc_dt: datetime, timezone: str | None = None) -> datetime:
    """
    Convert a UTC datetime to local timezone.

    Args:
        utc_dt: Datetime in UTC (can be naive or aware)
        timezone: Target timezone name (default: configured local timezone)

    Returns:
        Timezone-aware datetime in local timezone
    """
    tz = pytz.timezone(timezone or get_settings().local_timezone)

    if utc_dt.tzinfo is None:
        # Naive datetime - assume it's UTC
        utc_dt = UTC_TZ.localize(utc_dt)

    return utc_dt.astimezone(tz)


def format_local_time(
    utc_dt: datetime,
    timezone: str | None = None,
    fmt: str = "%d/%m/%Y %H:%M",
) -> str:
    """Format a UTC datetime as a local time string."""
    return from_utc(utc_dt, timezone).strftime(fmt)
