from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database.

    SQLite drops tzinfo on round-trip; values are always written in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_timestamp(epoch: int | float | None) -> datetime | None:
    """Convert a UNIX timestamp (as returned by the payment provider) to UTC."""
    if epoch is None:
        return None
    return datetime.fromtimestamp(epoch, tz=timezone.utc)
