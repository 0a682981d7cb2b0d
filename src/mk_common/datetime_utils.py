"""UTC datetime utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def from_unix(ts: int) -> datetime:
    """Gateway entities carry unix seconds; convert to aware UTC."""
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def minutes_ago(minutes: int, now: datetime | None = None) -> datetime:
    return (now or utc_now()) - timedelta(minutes=minutes)
