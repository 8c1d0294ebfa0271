"""Datetime helpers for timezone-aware timestamps."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime object is timezone-aware and in UTC.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat(dt: datetime | None) -> str | None:
    """Serialise a datetime as an ISO-8601 UTC string."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string written by :func:`isoformat`."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


__all__ = [
    "ensure_utc",
    "isoformat",
    "parse_iso",
    "utcnow",
]
