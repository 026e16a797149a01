"""Timestamp conversion between the users document and naive UTC datetimes."""

from datetime import UTC, datetime


def to_iso(value: datetime) -> str:
    """Format a naive UTC datetime the way the browser client writes them.

    >>> to_iso(datetime(2024, 5, 1, 12, 0, 0, 250000))
    '2024-05-01T12:00:00.250Z'
    """
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_iso(value: object) -> datetime | None:
    """Parse an ISO-8601 string into a naive UTC datetime.

    Returns None for missing or unparseable values instead of raising.
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
