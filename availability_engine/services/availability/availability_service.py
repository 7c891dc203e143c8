# ===== availability_engine/services/availability/availability_service.py =====
from typing import Any, Dict, Iterator, List, Optional
from datetime import date, datetime, timedelta
from sqlalchemy.orm import Session
import logging

from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import ValidationError
from availability_engine.services.availability.conflict_checker import ConflictChecker
from availability_engine.services.availability.slot_generator import Slot, generate_slots
from availability_engine.services.calendar.calendar_service import CalendarService, ServiceTypeService
from availability_engine.services.schedule.schedule_service import ScheduleService
from availability_engine.utils.time_utils import ensure_aware, get_timezone, local_date, local_day_bounds, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


class AvailabilityService:
    """Bookable slots for a calendar and service type"""

    @staticmethod
    def _validate_days(days: int) -> None:
        if days < 1 or days > settings.MAX_AVAILABILITY_DAYS:
            raise ValidationError(
                f"days must be between 1 and {settings.MAX_AVAILABILITY_DAYS}",
                code="invalid_days",
                details={"days": days},
            )

    @staticmethod
    def iter_available_slots(
            db: Session,
            calendar_id,
            service_type_id,
            start_date: Optional[date] = None,
            days: int = 7,
            now: Optional[datetime] = None
    ) -> Iterator[Slot]:
        """
        Lazy slot sequence over [start_date, start_date + days).

        Schedule, policy and bookings are read up front; the returned
        iterator only does arithmetic.
        """
        AvailabilityService._validate_days(days)
        now = ensure_aware(now, "now") if now else utcnow()

        calendar = CalendarService.get_calendar(db, calendar_id)
        service_type = ServiceTypeService.get_bookable_service_type(db, service_type_id, calendar.id)
        policy = CalendarService.get_policy(calendar)
        tz = get_timezone(calendar.timezone)

        if start_date is None:
            start_date = local_date(tz, now)
        end_date = start_date + timedelta(days=days)

        if not calendar.is_active:
            logger.info(f"Calendar {calendar.id} is inactive, no slots")
            return iter(())

        schedule = ScheduleService.get_effective_schedule_window(db, calendar.id, start_date, end_date)

        buffer = timedelta(minutes=policy.buffer_time)
        range_start = local_day_bounds(tz, start_date)[0] - buffer
        range_end = local_day_bounds(tz, end_date - timedelta(days=1))[1] + buffer
        booked = ConflictChecker.booked_intervals(db, calendar.id, range_start, range_end)

        return generate_slots(
            schedule=schedule,
            policy=policy,
            effective_length=service_type.effective_duration,
            booked=booked,
            now=now,
            start_date=start_date,
            days=days,
        )

    @staticmethod
    def get_available_slots(
            db: Session,
            calendar_id,
            service_type_id,
            start_date: Optional[date] = None,
            days: int = 7,
            now: Optional[datetime] = None,
            limit: Optional[int] = None
    ) -> List[Slot]:
        slots = []
        for slot in AvailabilityService.iter_available_slots(
                db, calendar_id, service_type_id, start_date=start_date, days=days, now=now
        ):
            slots.append(slot)
            if limit and len(slots) >= limit:
                break

        logger.info(f"Calendar {calendar_id}: {len(slots)} slot(s) from {start_date} over {days} day(s)")
        return slots

    @staticmethod
    def next_available(
            db: Session,
            calendar_id,
            service_type_id,
            now: Optional[datetime] = None
    ) -> Optional[Slot]:
        """First bookable slot from today through the end of the booking window"""
        now = ensure_aware(now, "now") if now else utcnow()
        calendar = CalendarService.get_calendar(db, calendar_id)
        policy = CalendarService.get_policy(calendar)
        days = min(policy.booking_window_days + 1, settings.MAX_AVAILABILITY_DAYS)

        slots = AvailabilityService.iter_available_slots(db, calendar.id, service_type_id, days=days, now=now)
        return next(slots, None)

    @staticmethod
    def get_availability_summary(
            db: Session,
            calendar_id,
            service_type_id,
            start_date: Optional[date] = None,
            days: int = 7,
            now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Per-day overview: opening hours, free slots and bookings"""
        AvailabilityService._validate_days(days)
        now = ensure_aware(now, "now") if now else utcnow()
        calendar = CalendarService.get_calendar(db, calendar_id)
        policy = CalendarService.get_policy(calendar)
        tz = get_timezone(calendar.timezone)
        if start_date is None:
            start_date = local_date(tz, now)

        slots_by_day: Dict[date, int] = {}
        for slot in AvailabilityService.iter_available_slots(
                db, calendar.id, service_type_id, start_date=start_date, days=days, now=now
        ):
            day = local_date(tz, slot.start_time)
            slots_by_day[day] = slots_by_day.get(day, 0) + 1

        schedule = ScheduleService.get_effective_schedule_window(
            db, calendar.id, start_date, start_date + timedelta(days=days)
        )
        booked = ConflictChecker.booked_intervals(
            db,
            calendar.id,
            local_day_bounds(tz, start_date)[0],
            local_day_bounds(tz, start_date + timedelta(days=days - 1))[1],
        )
        booked_by_day: Dict[date, int] = {}
        for interval in booked:
            day = local_date(tz, interval.start)
            booked_by_day[day] = booked_by_day.get(day, 0) + 1

        summary = []
        for day in schedule.days():
            source, intervals = schedule.resolve(day)
            booked_count = booked_by_day.get(day, 0)
            summary.append({
                "date": day.isoformat(),
                "source": source,
                "is_open": bool(intervals),
                "open_intervals": [
                    {"start": start.isoformat(), "end": end.isoformat()} for start, end in intervals
                ],
                "available_slots": slots_by_day.get(day, 0),
                "booked_count": booked_count,
                "daily_limit_reached": (
                    policy.max_bookings_per_day is not None and booked_count >= policy.max_bookings_per_day
                ),
            })
        return summary
