"""
UTC time helpers.

Response timestamps may arrive with or without an offset. Everything the
engine compares or subtracts goes through as_utc() first; naive values
are read as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime


def as_utc(value: datetime) -> datetime:
    """Timezone-aware UTC view of `value`."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)
