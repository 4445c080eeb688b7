"""
Week window helpers.

Weekly reports bucket messages into Monday-aligned UTC weeks. A window is
inclusive on both ends: [week_start, week_start + 7 days - 1 ms].
"""

from datetime import UTC, datetime, timedelta

WEEK = timedelta(days=7)
ONE_MS = timedelta(milliseconds=1)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_epoch_ms(value: datetime) -> int:
    return int(round(ensure_utc(value).timestamp() * 1000))


def from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def week_start_for(value: datetime) -> datetime:
    """Monday 00:00:00.000 UTC of the week containing value."""
    value = ensure_utc(value)
    monday = value - timedelta(days=value.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def window_end_for(window_start: datetime) -> datetime:
    return ensure_utc(window_start) + WEEK - ONE_MS


def previous_week_start(window_start: datetime) -> datetime:
    return ensure_utc(window_start) - WEEK


def is_week_aligned(value: datetime) -> bool:
    value = ensure_utc(value)
    return value == week_start_for(value)
