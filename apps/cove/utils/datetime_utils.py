"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to a naive datetime.

    SQLite hands back naive datetimes even for timezone-aware columns;
    every timestamp we store is UTC, so naive values are read as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Format a stored timestamp as an ISO-8601 UTC string (None passes through)."""
    value = ensure_utc(value)
    return value.isoformat() if value else None
