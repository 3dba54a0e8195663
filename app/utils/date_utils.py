from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def minutes_from_now(minutes: int) -> datetime:
    return utcnow() + timedelta(minutes=minutes)


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True once the payment window has closed. No deadline means never."""
    if expires_at is None:
        return False
    now = ensure_aware(now) if now else utcnow()
    return ensure_aware(expires_at) <= now
