"""
Datetime helpers.

All timestamps are stored and transmitted as UTC with an explicit timezone.
SQLite (used by the test-suite) hands back naive datetimes, so anything
compared in Python goes through ensure_utc first.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Ensure datetime is UTC timezone-aware.

    Naive datetimes are assumed to already be UTC.

    Example:
        >>> ensure_utc(datetime(2025, 12, 16, 11, 30)).tzinfo
        datetime.timezone.utc
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_iso_utc(dt: datetime | None) -> str | None:
    """
    Convert datetime to ISO format with 'Z' suffix.

    Example:
        >>> to_iso_utc(datetime(2025, 12, 16, 11, 30, 0, 123456, tzinfo=timezone.utc))
        '2025-12-16T11:30:00.123456Z'
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso_utc(value: str) -> datetime:
    """
    Parse an ISO 8601 string (with 'Z' or an offset) into an aware UTC datetime.

    Raises:
        ValueError: if the string is not a valid ISO timestamp
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))
