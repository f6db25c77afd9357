from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
NANOSECONDS_PER_SECOND = 1_000_000_000


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def datetime_to_nanoseconds(value: datetime) -> int:
    """Exact integer nanoseconds since the epoch (no float rounding)."""
    delta = ensure_utc(value) - EPOCH
    return (delta // timedelta(microseconds=1)) * 1000


def nanoseconds_to_datetime(value: int) -> datetime:
    """Convert nanoseconds to an aware datetime, truncated to microseconds."""
    return EPOCH + timedelta(microseconds=value // 1000)


def nanoseconds_to_iso(value: int) -> str:
    """Human readable timestamp with millisecond precision."""
    return nanoseconds_to_datetime(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def seconds_to_nanoseconds(value: Union[int, float, str]) -> int:
    # str() first so 1727388000.123 does not turn into 1727388000.12299990654
    return int(Decimal(str(value)) * NANOSECONDS_PER_SECOND)


def start_of_today() -> datetime:
    today = datetime.now(timezone.utc).date()
    return datetime.combine(today, time.min, tzinfo=timezone.utc)


def end_of_today() -> datetime:
    return start_of_today() + timedelta(days=1)
