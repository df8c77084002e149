"""Helpers shared by the SQL repositories."""

from datetime import datetime, timezone
from typing import Optional


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return a timezone-aware UTC datetime.

    SQLite returns naive datetimes for ``DateTime(timezone=True)`` columns;
    every value written by the repositories is UTC, so naive values are
    tagged rather than converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
