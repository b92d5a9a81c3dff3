"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "utc_now",
    "ensure_utc",
    "serialize_datetime",
    "parse_datetime",
]


def utc_now() -> datetime:
    """Return the current time as an aware UTC ``datetime``."""
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` converted to UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to a sortable UTC ISO 8601 string."""
    normalised = ensure_utc(value)
    if normalised is None:
        return None
    return normalised.isoformat(timespec="microseconds")


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string into an aware UTC ``datetime`` instance."""
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))
