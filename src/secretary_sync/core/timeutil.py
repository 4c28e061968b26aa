# src/secretary_sync/core/timeutil.py

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from .errors import ValidationError


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-06-01T09:30:00.123Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_day(raw: str | date) -> date:
    """Parse a YYYY-MM-DD schedule key. Raises ValidationError on anything else."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError:
        raise ValidationError(f"Invalid date (expected YYYY-MM-DD): {raw!r}") from None


def day_key(raw: str | date) -> str:
    return parse_day(raw).isoformat()


def shift_day(raw: str | date, days: int) -> str:
    return (parse_day(raw) + timedelta(days=days)).isoformat()


def today_key() -> str:
    return date.today().isoformat()
