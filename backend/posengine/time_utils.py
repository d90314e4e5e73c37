from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Engine clock: naive UTC, the form every DateTime column is written in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_after(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)


def whole_seconds(delta: timedelta) -> int:
    """Countdown value for display; truncates toward zero."""
    return int(delta.total_seconds())


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    ISO-8601 with a trailing 'Z' for API payloads.
    Naive values are taken to be UTC already.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
