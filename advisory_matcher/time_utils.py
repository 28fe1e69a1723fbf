"""
Shared date helpers.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp and normalize it to UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def parse_advisory_date(value) -> Optional[date]:
    """Parse an advisory date.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` strings and full
    ISO 8601 timestamps (normalized to their UTC calendar day). Returns
    None when the value cannot be interpreted.
    """
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if len(text) == 10:
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    parsed = parse_timestamp(text)
    return parsed.date() if parsed else None


def osv_timestamp(day: date) -> str:
    """Render a calendar day as an OSV RFC 3339 timestamp."""
    return f"{day.isoformat()}T12:00:00Z"
