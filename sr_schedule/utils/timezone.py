"""
Date and Time utilities

This module handles feed timestamp parsing and schedule time window calculations.
Centralizes all date parsing logic to maintain consistency across the application.
"""
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)

FEED_ZONE_MARKER = "Z"
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def parse_feed_timestamp(date_str: str, correction_hours: int = 1) -> datetime:
    """
    Parse a feed UTC timestamp into a corrected local datetime

    The zone marker is stripped and the correction is applied unconditionally,
    the feed reports its local schedule with a UTC+0 marker.

    Args:
        date_str: ISO8601 string with trailing zone marker (e.g., '2024-01-01T10:00:00Z')
        correction_hours: Hours added to every parsed value

    Returns:
        Naive datetime (e.g., 2024-01-01T11:00:00 for the example above)

    Raises:
        DateFormatError: If the marker is missing or the format is invalid
    """
    value = (date_str or "").strip()
    if not value.endswith(FEED_ZONE_MARKER):
        raise DateFormatError(f"Missing zone marker in feed timestamp: '{date_str}'")

    try:
        parsed = datetime.fromisoformat(value[:-1])
    except ValueError as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e

    if parsed.tzinfo is not None:
        raise DateFormatError(f"Unexpected offset in feed timestamp: '{date_str}'")

    return parsed + timedelta(hours=correction_hours)


def get_time_from(now: datetime, window_hours: int = 12) -> datetime:
    """
    Lower bound of the server-side request window

    Collapses to `now` unless going back crosses into the previous day.
    """
    candidate = now - timedelta(hours=window_hours)
    if candidate.date() == now.date():
        return now
    return candidate


def get_time_to(now: datetime, window_hours: int = 12) -> datetime:
    """
    Upper bound of the server-side request window

    Collapses to `now` unless going forward crosses into the next day.
    """
    candidate = now + timedelta(hours=window_hours)
    if candidate.date() == now.date():
        return now
    return candidate


def is_in_time_window(time_value: datetime, now: datetime, window_hours: int = 12) -> bool:
    """Check if time is strictly inside (now - window, now + window)"""
    window = timedelta(hours=window_hours)
    return now - window < time_value < now + window


def format_feed_query_time(value: datetime) -> str:
    """Format a datetime for the fromdate/todate query parameters"""
    return value.isoformat(timespec="seconds")


def format_display_time(value: datetime) -> str:
    """Format a datetime as shown in the schedule table"""
    return value.strftime(DISPLAY_FORMAT)
