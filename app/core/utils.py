"""
Core Utilities

Shared helpers used across the application.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    """ISO-8601 string of the current UTC time, as stored in JSON blobs."""
    return utcnow().isoformat()
