"""
Time helpers for workshop scheduling.
All persisted timestamps are UTC; SQLite hands them back naive.
"""
import math
from datetime import datetime, timedelta
from typing import Optional

import pytz


def utcnow() -> datetime:
    return datetime.now(pytz.UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def whole_days_between(start: datetime, end: datetime) -> int:
    """
    Number of full days elapsed from start to end (floored).

    Args:
        start: Earlier instant (naive values are treated as UTC)
        end: Later instant (naive values are treated as UTC)

    Returns:
        Floor of the elapsed time in days; negative when start is after end
    """
    delta = ensure_utc(end) - ensure_utc(start)
    return math.floor(delta.total_seconds() / 86400)


def add_hours(dt: datetime, hours: float) -> datetime:
    return ensure_utc(dt) + timedelta(hours=hours)


def hours_between(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600
