"""Date manipulation utilities"""

from datetime import date, datetime, time, timezone
from typing import Union

DateLike = Union[date, datetime, str]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc_datetime(value: DateLike) -> datetime:
    """
    Normalize a date, datetime or ISO-8601 string to an aware UTC datetime.

    Plain dates map to midnight UTC; naive datetimes are assumed to be UTC.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_date(value: DateLike) -> date:
    """Calendar date of a date, datetime or ISO-8601 string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return as_utc_datetime(value).date()


def months_between(start: DateLike, end: DateLike) -> int:
    """Whole calendar months from start to end, ignoring the day of month"""
    start_day = as_date(start)
    end_day = as_date(end)
    return (end_day.year - start_day.year) * 12 + (end_day.month - start_day.month)
