"""
Datetime utilities for consistent timezone handling across the application.

All persisted timestamps are timezone-aware UTC.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current datetime in UTC, timezone-aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware UTC.

    SQLite returns naive datetimes for TIMESTAMP(timezone=True) columns, so
    values read back from it are treated as UTC.

    Args:
        dt: Datetime to normalize

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
