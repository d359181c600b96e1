"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY = 86_400


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp as sent by the upstream API"""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way the upstream expects in query filters (yyyy-MM-ddTHH:mm:ssZ)"""
    return ensure_utc(value).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional days elapsed between two datetimes"""
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def add_days(from_date: datetime, days: float) -> datetime:
    """Shift a datetime by a fractional number of days"""
    return from_date + timedelta(days=days)
