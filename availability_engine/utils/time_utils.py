# availability_engine/utils/time_utils.py
"""Timezone helpers. Wall-clock times always belong to a calendar's timezone."""
from datetime import date, datetime, time, timedelta

import pytz

from availability_engine.core.exceptions import ValidationError


def get_timezone(name: str):
    """Resolve an IANA timezone name"""
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone: {name}", code="invalid_timezone")


def sunday_based_weekday(day: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday"""
    # Python's weekday() has 0 = Monday
    return (day.weekday() + 1) % 7


def localize(tz, naive: datetime) -> datetime:
    """Attach the calendar timezone to a wall-clock datetime and convert to UTC"""
    return tz.normalize(tz.localize(naive)).astimezone(pytz.UTC)


def local_datetime(tz, day: date, at: time) -> datetime:
    return localize(tz, datetime.combine(day, at))


def to_local(tz, instant: datetime) -> datetime:
    return instant.astimezone(tz)


def local_date(tz, instant: datetime) -> date:
    return instant.astimezone(tz).date()


def local_day_bounds(tz, day: date):
    """UTC instants of local midnight at the start and end of ``day``"""
    return (
        local_datetime(tz, day, time.min),
        local_datetime(tz, day + timedelta(days=1), time.min),
    )


def ensure_aware(value: datetime, field: str = "datetime") -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError(
            f"{field} must include a timezone offset",
            code="naive_datetime",
            details={"field": field},
        )
    return value.astimezone(pytz.UTC)


def utcnow() -> datetime:
    return datetime.now(pytz.UTC)
