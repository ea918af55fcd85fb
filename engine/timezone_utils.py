"""
Timezone utilities for the photo kiosk.

All stored instants are kept in UTC. The configured local timezone is used
for month windows, recurrence wall-clock times, EXIF capture dates and
display. Date-only values (all-day events, `until` dates) are stored as
midnight UTC so they never shift with the local zone.
"""

from datetime import datetime, date, time as dt_time
import time as _time
import pytz


# Default timezone - overridden by [General] timezone in the config
_local_timezone_name: str = "America/Chicago"


def set_timezone(timezone_name: str):
    """Set the local timezone for the application."""
    global _local_timezone_name
    _local_timezone_name = timezone_name


def get_timezone_name() -> str:
    """Get the name of the configured local timezone."""
    return _local_timezone_name


def get_local_timezone():
    """
    Get the local timezone as a pytz timezone object.

    Unknown names fall back to the system clock's current UTC offset.
    """
    try:
        return pytz.timezone(_local_timezone_name)
    except pytz.UnknownTimeZoneError:
        offset_seconds = -_time.altzone if _time.localtime().tm_isdst else -_time.timezone
        return pytz.FixedOffset(offset_seconds // 60)


def utc_to_local_naive(dt: datetime) -> datetime:
    """
    Convert an aware datetime to a naive local wall-clock datetime.

    Naive input is assumed to be local already and returned unchanged.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(get_local_timezone()).replace(tzinfo=None)
    return dt


def local_naive_to_utc(dt: datetime) -> datetime:
    """
    Convert a naive local datetime (form input, EXIF, wall clock) to UTC.

    Aware input is only converted to UTC.
    """
    if dt.tzinfo is None:
        return get_local_timezone().localize(dt).astimezone(pytz.UTC)
    return dt.astimezone(pytz.UTC)


def utc_midnight(day: date) -> datetime:
    """Date-only instant: midnight UTC of the given calendar date."""
    return pytz.UTC.localize(datetime.combine(day, dt_time.min))
