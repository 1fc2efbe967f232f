"""Helpers for the ISO-8601 date strings stored on company records."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Format a datetime the way the dashboard stores it (``...000Z``)."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    text = value.astimezone(UTC).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_iso(value: object) -> datetime | None:
    """Parse a stored date string, returning ``None`` when it is unusable.

    Naive values are treated as UTC.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
