"""
Timezone-aware datetime helpers.

Every timestamp in a device record is normalized to UTC so that elapsed-time
policies give the same answer regardless of where the server runs.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Get current UTC time with timezone information."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC.

    Args:
        dt: Datetime object (naive datetimes are assumed to already be UTC)

    Returns:
        UTC datetime with timezone info
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    elif dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)
    else:
        return dt


def parse_utc(value: Union[datetime, str, int, float, None]) -> Optional[datetime]:
    """Parse a stored or transmitted timestamp into a UTC datetime.

    Accepts datetimes, ISO 8601 strings (with or without a 'Z' suffix) and
    Unix timestamps in seconds. None stays None.

    Raises:
        ValueError: if a string cannot be parsed
        TypeError: for any other input type
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, str):
        return to_utc(datetime.fromisoformat(value.strip().replace('Z', '+00:00')))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    raise TypeError(f"Cannot interpret {value!r} as a timestamp")


def utc_isoformat(dt: Optional[datetime] = None) -> str:
    """Get UTC ISO format string.

    Args:
        dt: Datetime to format (defaults to current UTC time)

    Returns:
        ISO format string with UTC timezone suffix
    """
    if dt is None:
        dt = utc_now()
    else:
        dt = to_utc(dt)

    return dt.isoformat().replace('+00:00', 'Z')


def format_age(dt: datetime, now: datetime) -> str:
    """Format the time between ``dt`` and ``now`` as a human-readable string.

    Returns:
        Human-readable age string (e.g., "2m 30s ago", "1h 15m ago")
    """
    total_seconds = (to_utc(now) - to_utc(dt)).total_seconds()

    if total_seconds < 60:
        return f"{int(total_seconds)}s ago"
    elif total_seconds < 3600:  # Less than 1 hour
        minutes = int(total_seconds // 60)
        seconds = int(total_seconds % 60)
        return f"{minutes}m {seconds}s ago"
    elif total_seconds < 86400:  # Less than 1 day
        hours = int(total_seconds // 3600)
        minutes = int((total_seconds % 3600) // 60)
        return f"{hours}h {minutes}m ago"
    else:  # 1 day or more
        days = int(total_seconds // 86400)
        hours = int((total_seconds % 86400) // 3600)
        return f"{days}d {hours}h ago"
