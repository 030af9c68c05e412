"""Shared utility functions."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize datetime to UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_uuid(value: UUID | str | None) -> UUID | None:
    """Return UUID for a well-formed identifier, None otherwise."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None
