"""Server wall-clock helpers. Client timestamps are never consulted."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def elapsed_seconds(since: datetime, now: datetime) -> int:
    """Whole seconds from *since* to *now*, never negative."""
    return max(0, int((now - as_utc(since)).total_seconds()))
