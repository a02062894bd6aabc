"""ISO-8601 helpers shared by every adapter.

All timestamps leave the adapter layer as UTC ISO-8601 strings with
microsecond precision, whatever shape the backend handed back.
"""

from __future__ import annotations

from datetime import date, datetime, timezone


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_iso(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(text: str) -> datetime:
    """Parse an ISO-8601 string (a trailing ``Z`` is accepted) into an aware datetime."""
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso_date(value: date | datetime | str) -> str:
    """Reduce a date, datetime or ISO string to ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if len(value) == 10:
        return date.fromisoformat(value).isoformat()
    return parse_iso(value).date().isoformat()
