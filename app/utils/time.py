"""
Time utilities. All persisted timestamps are naive UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get the current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime for storage.

    Args:
        dt: Datetime to convert (naive values are assumed to be UTC already)

    Returns:
        Naive datetime in UTC
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def send_time_after(delay_hours: Optional[float], reference_time: Optional[datetime] = None) -> datetime:
    """
    Compute when a triggered message becomes due.

    Args:
        delay_hours: Hours to wait; None or 0 means immediately
        reference_time: Reference time (defaults to now in UTC)

    Returns:
        Naive UTC datetime the message is scheduled for
    """
    if reference_time is None:
        reference_time = utc_now()
    return reference_time + timedelta(hours=delay_hours or 0)
