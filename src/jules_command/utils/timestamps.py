"""Timestamp helpers.

Timestamps cross every boundary (SQLite rows, API payloads, tool output) as
ISO-8601 strings. They are parsed into timezone-aware UTC datetimes as soon
as they are read, and all duration arithmetic happens on datetimes.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Accepts a trailing ``Z`` and naive values (treated as UTC). Empty or
    unparseable input returns None rather than raising, since missing
    timestamps are routine for sessions and PRs.

    Args:
        value: ISO string, datetime, or None.

    Returns:
        Aware UTC datetime, or None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime as an ISO-8601 UTC string (None passes through)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def minutes_between(earlier: datetime, later: datetime) -> float:
    """Elapsed minutes from ``earlier`` to ``later``."""
    return (later - earlier).total_seconds() / 60


def hours_between(earlier: datetime, later: datetime) -> float:
    """Elapsed hours from ``earlier`` to ``later``."""
    return (later - earlier).total_seconds() / 3600
