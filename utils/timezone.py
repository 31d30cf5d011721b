"""UTC time helpers. Every timestamp stored by the auth service is UTC."""

from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """Current time in UTC. Default clock for token issuance and validation."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert an aware datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def hours_after(dt: datetime, hours: float) -> datetime:
    """Return dt shifted forward by a (possibly fractional) number of hours."""
    return to_utc(dt) + timedelta(hours=hours)

