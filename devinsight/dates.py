"""Date helpers. All timestamps are stored as naive UTC datetimes."""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Converts an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_date(value: Optional[datetime]) -> str:
    """YYYY-MM-DD, or an empty string for missing dates."""
    if value is None:
        return ""
    return value.strftime('%Y-%m-%d')


def hours_between(start: datetime, end: datetime) -> float:
    return (as_naive_utc(end) - as_naive_utc(start)).total_seconds() / 3600.0
