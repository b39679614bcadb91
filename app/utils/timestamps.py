"""Conversion between datetimes, ISO-8601 strings and epoch microseconds."""
from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MICROSECOND = timedelta(microseconds=1)


def now_us() -> int:
    """Current UTC time in microseconds since the epoch."""
    return to_us(datetime.now(timezone.utc))


def to_us(value: datetime) -> int:
    """
    Convert a datetime to microseconds since the epoch.

    Naive datetimes are treated as UTC.

    Examples:
        >>> to_us(datetime(1970, 1, 1, 0, 0, 1))
        1000000
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // ONE_MICROSECOND


def from_us(value: int) -> datetime:
    """Convert microseconds since the epoch to an aware UTC datetime."""
    return EPOCH + timedelta(microseconds=value)


def format_iso(value: int) -> str:
    """Format epoch microseconds as an ISO-8601 UTC string ending in ``Z``."""
    return from_us(value).isoformat().replace("+00:00", "Z")
