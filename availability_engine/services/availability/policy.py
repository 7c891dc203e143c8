# availability_engine/services/availability/policy.py
"""
Calendar policy checks shared by the slot generator (filtering) and the
booking writer (rejecting with PolicyError).
"""
import uuid
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from availability_engine.core.exceptions import PolicyError
from availability_engine.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from availability_engine.services.schedule.recurrence import Interval
from availability_engine.utils.time_utils import local_date, local_datetime, local_day_bounds


def earliest_bookable_start(policy, now: datetime) -> datetime:
    return now + timedelta(hours=policy.minimum_notice_hours)


def last_bookable_date(policy, tz, now: datetime) -> date:
    return local_date(tz, now) + timedelta(days=policy.booking_window_days)


def fits_in_intervals(
        tz,
        day: date,
        intervals: List[Interval],
        start: datetime,
        effective_length: int,
        buffer_minutes: int = 0
) -> bool:
    """
    True when [start, start + effective_length + buffer) lies inside one of
    the day's open intervals.
    """
    footprint_end = start + timedelta(minutes=effective_length + buffer_minutes)
    for open_at, close_at in intervals:
        if local_datetime(tz, day, open_at) <= start and footprint_end <= local_datetime(tz, day, close_at):
            return True
    return False


def daily_booking_count(
        db: Session,
        calendar_id: uuid.UUID,
        tz,
        day: date,
        exclude_booking_id: Optional[uuid.UUID] = None
) -> int:
    """Active bookings starting on ``day`` in the calendar's timezone"""
    day_start, day_end = local_day_bounds(tz, day)
    query = db.query(func.count(Booking.id)).filter(
        Booking.calendar_id == calendar_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.start_time >= day_start,
        Booking.start_time < day_end
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query.scalar() or 0


def check_minimum_notice(policy, start: datetime, now: datetime) -> None:
    if start < earliest_bookable_start(policy, now):
        raise PolicyError(
            f"Bookings need at least {policy.minimum_notice_hours} hour(s) notice.",
            code="minimum_notice",
            details={"minimum_notice_hours": policy.minimum_notice_hours},
        )


def check_booking_window(policy, tz, start: datetime, now: datetime) -> None:
    last_day = last_bookable_date(policy, tz, now)
    if local_date(tz, start) > last_day:
        raise PolicyError(
            f"Bookings can be made at most {policy.booking_window_days} day(s) in advance.",
            code="booking_window",
            details={"booking_window_days": policy.booking_window_days, "last_bookable_date": last_day.isoformat()},
        )


def check_opening_hours(
        tz,
        day: date,
        intervals: List[Interval],
        start: datetime,
        effective_length: int,
        buffer_minutes: int
) -> None:
    if not fits_in_intervals(tz, day, intervals, start, effective_length, buffer_minutes):
        raise PolicyError(
            "The requested time is outside the calendar's opening hours.",
            code="outside_availability",
            details={"date": day.isoformat()},
        )


def check_daily_limit(policy, booked_count: int, day: date) -> None:
    if policy.max_bookings_per_day is not None and booked_count >= policy.max_bookings_per_day:
        raise PolicyError(
            f"No more bookings are accepted on {day.isoformat()}.",
            code="daily_limit_reached",
            details={"max_bookings_per_day": policy.max_bookings_per_day},
        )
