"""
Standardized UTC timestamp utilities.

Format: "YYYY-MM-DD HH:MM:SS" (UTC). Both Postgres and the
driver-level string comparisons accept it.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a DB timestamp into a datetime.

    Postgres hands back datetime objects already; string columns come back
    as "YYYY-MM-DD HH:MM:SS[.ffffff]" or ISO 8601 with a T.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value

    normalized = str(value).replace("T", " ")
    for fmt in ("%Y-%m-%d %H:%M:%S.%f", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(normalized, fmt)
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def format_timestamp(value) -> Optional[str]:
    """Serialize a DB timestamp for JSON responses."""
    parsed = parse_timestamp(value)
    if not parsed:
        return None
    return parsed.strftime("%Y-%m-%d %H:%M:%S")
