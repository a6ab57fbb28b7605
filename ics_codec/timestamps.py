"""Date and time helpers for the iCalendar wire format.

Timestamps are integer milliseconds since the epoch. Date-only values are
anchored to local midnight, and naive date-times are read in the local zone.
"""
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

MILLIS_PER_HOUR = 3600 * 1000
MILLIS_PER_DAY = 24 * MILLIS_PER_HOUR

UTC_DATE_TIME_FORMAT = '%Y%m%dT%H%M%SZ'
LOCAL_DATE_TIME_FORMAT = '%Y%m%dT%H%M%S'
DATE_FORMAT = '%Y%m%d'


def current_time_millis() -> int:
    """Default clock: wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _to_millis(dt: datetime) -> int:
    return int(round(dt.timestamp() * 1000))


def is_date_only(key: str) -> bool:
    """Check whether a property key declares a DATE value."""
    return 'VALUE=DATE' in key and 'VALUE=DATE-TIME' not in key


def parse_date_time(key: str, value: str) -> Optional[int]:
    """
    Parse a DTSTART/DTEND value into epoch milliseconds.

    Args:
        key: Full property key including parameters (e.g. DTSTART;VALUE=DATE)
        value: Property value

    Returns:
        Epoch milliseconds, or None when the value cannot be parsed
    """
    clean_value = value.strip()

    try:
        if is_date_only(key):
            return _to_millis(datetime.strptime(clean_value, DATE_FORMAT))

        if clean_value.endswith('Z'):
            parsed = datetime.strptime(clean_value, UTC_DATE_TIME_FORMAT)
            return _to_millis(parsed.replace(tzinfo=timezone.utc))

        return _to_millis(datetime.strptime(clean_value, LOCAL_DATE_TIME_FORMAT))
    except (ValueError, OverflowError):
        return None


def format_utc_date_time(timestamp: int) -> str:
    """Format epoch milliseconds as yyyyMMdd'T'HHmmss'Z'."""
    dt = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    return dt.strftime(UTC_DATE_TIME_FORMAT)


def format_date(timestamp: int) -> str:
    """Format epoch milliseconds as a local yyyyMMdd date."""
    return datetime.fromtimestamp(timestamp / 1000).strftime(DATE_FORMAT)


def shift_local_days(timestamp: int, days: int) -> int:
    """Move a timestamp by whole calendar days, anchored to local midnight."""
    day = datetime.fromtimestamp(timestamp / 1000).date() + timedelta(days=days)
    return _to_millis(datetime(day.year, day.month, day.day))
