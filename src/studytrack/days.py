"""Calendar helpers.

Every day boundary in StudyTrack goes through this module so that streak
dates and aggregate windows agree. Timestamps are stored as aware UTC
datetimes and only converted to the configured zone here.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Project an aware timestamp onto a calendar date in ``tz``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def start_of_day(day: date, tz: tzinfo) -> datetime:
    """Return local midnight of ``day`` as an aware UTC datetime."""

    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def start_of_today(now: datetime, tz: tzinfo) -> datetime:
    return start_of_day(local_date(now, tz), tz)


def window_start(now: datetime, tz: tzinfo, days: int) -> datetime:
    """Start of the trailing window: local midnight ``days`` days before today."""

    return start_of_day(local_date(now, tz) - timedelta(days=days), tz)


def format_clock(total_seconds: int) -> str:
    """Format seconds as MM:SS (minutes keep growing past 59)."""

    minutes, seconds = divmod(max(0, int(total_seconds)), 60)
    return f"{minutes:02d}:{seconds:02d}"


def format_minutes(minutes: float) -> str:
    if minutes < 1:
        return "< 1 min"
    return f"{round(minutes)} min"


__all__ = [
    "format_clock",
    "format_minutes",
    "from_epoch_ms",
    "local_date",
    "start_of_day",
    "start_of_today",
    "to_epoch_ms",
    "window_start",
]
