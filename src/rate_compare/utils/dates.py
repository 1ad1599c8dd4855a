"""Date parsing helpers shared by validation, normalisation and the CLI."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def parse_date(value: object) -> Optional[date]:
    """Return a calendar date for ISO strings, dates or datetimes; ``None`` otherwise."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        timestamp = parse_timestamp(text)
        return timestamp.date() if timestamp else None


def parse_timestamp(value: object) -> Optional[datetime]:
    """Return an aware datetime for ISO timestamps (``Z`` suffix allowed) or datetimes."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_nights(check_in: object, check_out: object) -> int:
    start = parse_date(check_in)
    end = parse_date(check_out)
    if start is None or end is None:
        return 0
    return max(0, (end - start).days)


def is_past_date(value: object, *, today: Optional[date] = None) -> bool:
    """Unparseable values count as past so they are never offered for booking."""
    parsed = parse_date(value)
    if parsed is None:
        return True
    return parsed < (today or utcnow().date())


def resolve_stay(check_in: object, check_out: object) -> tuple[date, date]:
    """Parse a requested stay, raising ``ValueError`` for unusable ranges."""
    start = parse_date(check_in)
    end = parse_date(check_out)
    if start is None:
        raise ValueError(f"Invalid check-in date: {check_in!r}")
    if end is None:
        raise ValueError(f"Invalid check-out date: {check_out!r}")
    if end <= start:
        raise ValueError(f"Check-out {end.isoformat()} must be after check-in {start.isoformat()}")
    return start, end


def default_stay(today: Optional[date] = None, nights: int = 1) -> tuple[date, date]:
    start = today or utcnow().date()
    return start, start + timedelta(days=nights)
