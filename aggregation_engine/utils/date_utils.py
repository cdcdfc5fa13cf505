"""
Date and time utilities for the aggregation engine.
Provides timezone-aware timestamps and conversion helpers.
"""

from datetime import datetime
from typing import Optional

import pytz

# Default timezone
DEFAULT_TIMEZONE = "UTC"


def get_current_timestamp(timezone_name: Optional[str] = None) -> datetime:
    """
    Get current timestamp with optional timezone.

    Args:
        timezone_name: Timezone name (e.g., 'UTC', 'Europe/Moscow')

    Returns:
        Current datetime with timezone
    """
    if timezone_name:
        return datetime.now(pytz.timezone(timezone_name))
    return datetime.now(pytz.UTC)


def ensure_aware(dt: datetime, timezone_name: Optional[str] = None) -> datetime:
    """Attach a timezone to naive datetimes; aware datetimes pass through."""
    if dt.tzinfo is not None:
        return dt
    if timezone_name:
        return pytz.timezone(timezone_name).localize(dt)
    return pytz.UTC.localize(dt)


def is_valid_timezone(timezone_name: str) -> bool:
    try:
        pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        return False
    return True


def duration_ms(start_time: datetime, end_time: datetime) -> int:
    """Elapsed milliseconds between two datetimes."""
    return int((end_time - start_time).total_seconds() * 1000)
