from datetime import date, datetime, timezone
from typing import Union


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Get current UTC datetime as a naive datetime (no timezone info).
    All DateTime columns store naive UTC values.

    Returns:
        datetime: Current UTC datetime without timezone info
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to naive UTC (no timezone info).

    Args:
        dt: Datetime object to convert

    Returns:
        datetime: Naive UTC datetime
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    utc_dt = dt.astimezone(timezone.utc)
    return utc_dt.replace(tzinfo=None)


def days_between(
    earlier: Union[date, datetime], later: Union[date, datetime]
) -> int:
    """Whole calendar days from ``earlier`` to ``later`` (negative if reversed)."""
    if isinstance(earlier, datetime):
        earlier = to_naive_utc(earlier).date()
    if isinstance(later, datetime):
        later = to_naive_utc(later).date()
    return (later - earlier).days
