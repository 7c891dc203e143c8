# availability_engine/services/availability/conflict_checker.py
"""
Overlap detection between a proposed time range and existing bookings.

Intervals are half-open, [start, end). A buffer widens every existing
booking on both sides, so with buffer_time = 0 touching bookings are fine.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from availability_engine.core.exceptions import ValidationError
from availability_engine.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from availability_engine.services.calendar.calendar_service import CalendarService, _parse_uuid
from availability_engine.utils.time_utils import ensure_aware

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookedInterval:
    start: datetime
    end: datetime
    booking_id: Optional[uuid.UUID] = None


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def conflicts_with_any(
        start: datetime,
        end: datetime,
        booked: Iterable[BookedInterval],
        buffer_minutes: int = 0
) -> bool:
    """In-memory variant used by the slot generator"""
    buffer = timedelta(minutes=buffer_minutes)
    for interval in booked:
        if intervals_overlap(start, end, interval.start - buffer, interval.end + buffer):
            return True
    return False


class ConflictChecker:
    """Read-only conflict queries against stored bookings"""

    @staticmethod
    def _validate_range(start: datetime, end: datetime):
        start = ensure_aware(start, "start_time")
        end = ensure_aware(end, "end_time")
        if end <= start:
            raise ValidationError("end_time must be after start_time", code="invalid_time_range")
        return start, end

    @staticmethod
    def find_conflicts(
            db: Session,
            calendar_id,
            start: datetime,
            end: datetime,
            exclude_booking_id=None,
            buffer_minutes: Optional[int] = None
    ) -> List[Booking]:
        """
        Active bookings whose buffered interval overlaps [start, end).

        ``buffer_minutes`` defaults to the calendar's buffer_time.
        """
        start, end = ConflictChecker._validate_range(start, end)
        calendar_uuid = _parse_uuid(calendar_id, "calendar_id")
        if buffer_minutes is None:
            calendar = CalendarService.get_calendar(db, calendar_uuid)
            buffer_minutes = CalendarService.get_policy(calendar).buffer_time

        buffer = timedelta(minutes=buffer_minutes)
        # existing.start - buffer < end  and  existing.end + buffer > start
        query = db.query(Booking).filter(
            Booking.calendar_id == calendar_uuid,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time < end + buffer,
            Booking.end_time > start - buffer
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != _parse_uuid(exclude_booking_id, "booking_id"))

        return query.order_by(Booking.start_time.asc()).all()

    @staticmethod
    def has_conflict(
            db: Session,
            calendar_id,
            start: datetime,
            end: datetime,
            exclude_booking_id=None,
            buffer_minutes: Optional[int] = None
    ) -> bool:
        conflicts = ConflictChecker.find_conflicts(
            db, calendar_id, start, end,
            exclude_booking_id=exclude_booking_id,
            buffer_minutes=buffer_minutes,
        )
        if conflicts:
            logger.debug(f"{len(conflicts)} conflicting booking(s) on calendar {calendar_id} for {start} - {end}")
        return bool(conflicts)

    @staticmethod
    def booked_intervals(
            db: Session,
            calendar_id: uuid.UUID,
            range_start: datetime,
            range_end: datetime,
            exclude_booking_id=None
    ) -> List[BookedInterval]:
        """Active bookings touching [range_start, range_end) as plain intervals"""
        query = db.query(Booking.id, Booking.start_time, Booking.end_time).filter(
            Booking.calendar_id == calendar_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time < range_end,
            Booking.end_time > range_start
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return [
            BookedInterval(start=row.start_time, end=row.end_time, booking_id=row.id)
            for row in query.order_by(Booking.start_time.asc()).all()
        ]
