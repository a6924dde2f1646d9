"""UTC timestamp helpers for values stored through PostgREST."""

from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime for a timestamptz column."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp returned by PostgREST.

    Accepts datetimes and ISO-8601 strings (including a trailing ``Z``).
    Naive values are assumed to be UTC.

    Returns:
        datetime | None: Aware datetime, or None for empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
