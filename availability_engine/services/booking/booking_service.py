# ============================================================================
# availability_engine/services/booking/booking_service.py
# Booking writer: the only place that creates or changes bookings
# ============================================================================
import logging
import uuid
from datetime import datetime, timedelta
from time import sleep
from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import (
    AvailabilityEngineError,
    ConflictError,
    NotFoundError,
    PolicyError,
    TransientError,
    ValidationError,
)
from availability_engine.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from availability_engine.models.calendar import Calendar
from availability_engine.models.service_type import ServiceType
from availability_engine.services.availability import policy as booking_policy
from availability_engine.services.availability.conflict_checker import ConflictChecker
from availability_engine.services.calendar.calendar_service import (
    CalendarPolicy,
    CalendarService,
    ServiceTypeService,
    _parse_uuid,
)
from availability_engine.services.events import event_publisher
from availability_engine.services.schedule.schedule_service import ScheduleService
from availability_engine.services.waitlist.waitlist_service import WaitlistService
from availability_engine.utils.time_utils import ensure_aware, get_timezone, local_date, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")


def _translate_db_error(exc: DBAPIError) -> AvailabilityEngineError:
    """
    Map a storage error to the domain taxonomy.

    Constraint violations (unique index, exclusion constraint) mean another
    writer got there first. Locks, deadlocks, serialization failures and
    dropped connections are worth retrying.
    """
    if isinstance(exc, IntegrityError):
        return ConflictError(details={"reason": "constraint_violation"})
    if isinstance(exc, OperationalError) or exc.connection_invalidated:
        return TransientError(details={"reason": exc.__class__.__name__})
    return TransientError(details={"reason": "database_error"})


class BookingService:
    """Atomic check-then-write for bookings and their status transitions"""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _run_in_transaction(db: Session, operation: Callable[[], T]) -> T:
        """Run ``operation`` and commit, translating storage errors"""
        try:
            result = operation()
            db.commit()
            return result
        except AvailabilityEngineError:
            db.rollback()
            raise
        except DBAPIError as e:
            db.rollback()
            raise _translate_db_error(e) from e

    @staticmethod
    def _with_retry(db: Session, operation: Callable[[], T], label: str) -> T:
        """Retry transient failures with exponential backoff"""
        attempts = settings.BOOKING_MAX_RETRIES + 1
        for attempt in range(1, attempts + 1):
            try:
                return BookingService._run_in_transaction(db, operation)
            except TransientError as e:
                if attempt >= attempts:
                    logger.error(f"{label} failed after {attempt} attempt(s): {e.details}")
                    raise
                delay_ms = settings.BOOKING_RETRY_BACKOFF_MS * (2 ** (attempt - 1))
                logger.warning(f"{label} hit a transient error ({e.details}), retrying in {delay_ms}ms")
                sleep(delay_ms / 1000.0)

    @staticmethod
    def _load_booking(db: Session, booking_id, for_update: bool = False) -> Booking:
        query = db.query(Booking).filter(Booking.id == _parse_uuid(booking_id, "booking_id"))
        if for_update:
            query = query.with_for_update().populate_existing()
        booking = query.first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found", code="booking_not_found")
        return booking

    @staticmethod
    def _check_slot(
            db: Session,
            calendar: Calendar,
            policy: CalendarPolicy,
            service_type: ServiceType,
            start: datetime,
            end: datetime,
            now: datetime,
            force: bool,
            exclude_booking_id: Optional[uuid.UUID] = None
    ) -> None:
        """Policy and conflict checks, run inside the writing transaction"""
        tz = get_timezone(calendar.timezone)
        day = local_date(tz, start)

        if not force:
            booking_policy.check_minimum_notice(policy, start, now)
            booking_policy.check_booking_window(policy, tz, start, now)
            schedule = ScheduleService.get_effective_schedule_window(db, calendar.id, day, day + timedelta(days=1))
            booking_policy.check_opening_hours(
                tz, day, schedule.intervals_for(day), start,
                service_type.effective_duration, policy.buffer_time,
            )

        booked_count = booking_policy.daily_booking_count(db, calendar.id, tz, day, exclude_booking_id)
        booking_policy.check_daily_limit(policy, booked_count, day)

        conflicts = ConflictChecker.find_conflicts(
            db, calendar.id, start, end,
            exclude_booking_id=exclude_booking_id,
            buffer_minutes=policy.buffer_time,
        )
        if conflicts:
            raise ConflictError(details={"conflicting_booking_ids": [str(b.id) for b in conflicts]})

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    def create_booking(
            db: Session,
            calendar_id,
            service_type_id,
            start_time: datetime,
            customer_name: str,
            customer_email: Optional[str] = None,
            customer_phone: Optional[str] = None,
            end_time: Optional[datetime] = None,
            notes: Optional[str] = None,
            payment_confirmed: bool = False,
            waitlist_entry_id=None,
            booking_source: str = "web",
            force: bool = False,
            now: Optional[datetime] = None
    ) -> Booking:
        """
        Validate and insert a booking.

        The calendar row is locked for the duration of the transaction, so
        concurrent writers on one calendar are serialized and the checks
        below see every committed booking. The storage constraints remain the
        final arbiter: a violation surfaces as ConflictError.

        Raises:
            ValidationError, NotFoundError, PolicyError, ConflictError,
            TransientError (after BOOKING_MAX_RETRIES retries)
        """
        calendar_uuid = _parse_uuid(calendar_id, "calendar_id")
        start = ensure_aware(start_time, "start_time")
        requested_end = ensure_aware(end_time, "end_time") if end_time is not None else None
        now = ensure_aware(now, "now") if now else utcnow()

        def operation() -> Booking:
            calendar = CalendarService.get_calendar(db, calendar_uuid, for_update=True)
            if not calendar.is_active:
                raise PolicyError("This calendar is not accepting bookings.", code="calendar_inactive")

            service_type = ServiceTypeService.get_bookable_service_type(db, service_type_id, calendar.id)
            end = start + timedelta(minutes=service_type.effective_duration)
            if requested_end is not None and requested_end != end:
                raise ValidationError(
                    f"end_time must be start_time + {service_type.effective_duration} minutes",
                    code="end_time_mismatch",
                    details={"expected_end_time": end.isoformat()},
                )

            policy = CalendarService.get_policy(calendar)
            BookingService._check_slot(db, calendar, policy, service_type, start, end, now, force)

            status = BookingStatus.PENDING if policy.confirmation_required else BookingStatus.CONFIRMED
            booking = Booking(
                id=uuid.uuid4(),
                calendar_id=calendar.id,
                service_type_id=service_type.id,
                customer_name=customer_name,
                customer_email=customer_email,
                customer_phone=customer_phone,
                notes=notes,
                start_time=start,
                end_time=end,
                total_price=service_type.price,
                payment_confirmed=payment_confirmed,
                status=status.value,
                booking_source=booking_source,
                confirmed_at=now if status is BookingStatus.CONFIRMED else None,
            )
            db.add(booking)

            if waitlist_entry_id is not None:
                entry = WaitlistService.mark_converted(db, waitlist_entry_id, calendar.id, booking.id)
                booking.waitlist_entry_id = entry.id
                booking.booking_source = "waitlist"

            db.flush()
            event_publisher.record_event(
                db, calendar, event_publisher.BOOKING_CREATED, booking.id, booking.to_dict()
            )
            return booking

        try:
            booking = BookingService._with_retry(db, operation, f"Booking on calendar {calendar_uuid}")
        except (ConflictError, PolicyError) as e:
            logger.info(f"Booking rejected on calendar {calendar_uuid} at {start.isoformat()}: {e.code}")
            raise

        logger.info(f"Created booking {booking.id} ({booking.status}) on calendar {booking.calendar_id}")
        return booking

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(
            db: Session,
            booking_id,
            allowed_from: Tuple[str, ...],
            to_status: BookingStatus,
            event_type: str,
            apply: Optional[Callable[[Booking, Calendar, CalendarPolicy], None]] = None
    ) -> Booking:
        def operation() -> Booking:
            booking = BookingService._load_booking(db, booking_id, for_update=True)
            if booking.status not in allowed_from:
                raise ValidationError(
                    f"Cannot change booking from {booking.status} to {to_status.value}",
                    code="invalid_transition",
                    details={"current_status": booking.status, "requested_status": to_status.value},
                )
            calendar = CalendarService.get_calendar(db, booking.calendar_id)
            if apply is not None:
                apply(booking, calendar, CalendarService.get_policy(calendar))
            booking.status = to_status.value
            db.flush()
            event_publisher.record_event(db, calendar, event_type, booking.id, booking.to_dict())
            return booking

        booking = BookingService._run_in_transaction(db, operation)
        logger.info(f"Booking {booking.id} is now {booking.status}")
        return booking

    @staticmethod
    def cancel_booking(
            db: Session,
            booking_id,
            reason: Optional[str] = None,
            force: bool = False,
            now: Optional[datetime] = None
    ) -> Booking:
        """
        pending|confirmed -> cancelled. The row is kept and its interval is
        free as soon as this commits. ``force`` lets staff bypass
        allow_cancellations and cancellation_deadline_hours.
        """
        now = ensure_aware(now, "now") if now else utcnow()

        def apply(booking: Booking, calendar: Calendar, policy: CalendarPolicy) -> None:
            if not force:
                if not policy.allow_cancellations:
                    raise PolicyError("This calendar does not allow cancellations.", code="cancellations_disabled")
                deadline = booking.start_time - timedelta(hours=policy.cancellation_deadline_hours)
                if now > deadline:
                    raise PolicyError(
                        f"Bookings can only be cancelled up to {policy.cancellation_deadline_hours} "
                        f"hour(s) before the start.",
                        code="cancellation_deadline_passed",
                        details={"cancellation_deadline_hours": policy.cancellation_deadline_hours},
                    )
            booking.cancelled_at = now
            booking.cancellation_reason = reason

        return BookingService._transition(
            db, booking_id, ACTIVE_BOOKING_STATUSES, BookingStatus.CANCELLED,
            event_publisher.BOOKING_CANCELLED, apply,
        )

    @staticmethod
    def confirm_booking(db: Session, booking_id, now: Optional[datetime] = None) -> Booking:
        now = ensure_aware(now, "now") if now else utcnow()

        def apply(booking: Booking, calendar: Calendar, policy: CalendarPolicy) -> None:
            booking.confirmed_at = now

        return BookingService._transition(
            db, booking_id, (BookingStatus.PENDING.value,), BookingStatus.CONFIRMED,
            event_publisher.BOOKING_CONFIRMED, apply,
        )

    @staticmethod
    def complete_booking(db: Session, booking_id, now: Optional[datetime] = None) -> Booking:
        now = ensure_aware(now, "now") if now else utcnow()

        def apply(booking: Booking, calendar: Calendar, policy: CalendarPolicy) -> None:
            booking.completed_at = now

        return BookingService._transition(
            db, booking_id, (BookingStatus.CONFIRMED.value,), BookingStatus.COMPLETED,
            event_publisher.BOOKING_COMPLETED, apply,
        )

    @staticmethod
    def mark_no_show(db: Session, booking_id) -> Booking:
        return BookingService._transition(
            db, booking_id, (BookingStatus.CONFIRMED.value,), BookingStatus.NO_SHOW,
            event_publisher.BOOKING_NO_SHOW,
        )

    @staticmethod
    def reschedule_booking(
            db: Session,
            booking_id,
            new_start_time: datetime,
            force: bool = False,
            now: Optional[datetime] = None
    ) -> Booking:
        """Move an active booking under the same checks as creation, ignoring itself"""
        booking_uuid = _parse_uuid(booking_id, "booking_id")
        start = ensure_aware(new_start_time, "start_time")
        now = ensure_aware(now, "now") if now else utcnow()

        def operation() -> Booking:
            current = BookingService._load_booking(db, booking_uuid)
            calendar = CalendarService.get_calendar(db, current.calendar_id, for_update=True)
            booking = BookingService._load_booking(db, booking_uuid, for_update=True)
            if booking.status not in ACTIVE_BOOKING_STATUSES:
                raise ValidationError(
                    f"Cannot reschedule a {booking.status} booking",
                    code="invalid_transition",
                    details={"current_status": booking.status},
                )

            service_type = ServiceTypeService.get_service_type(db, booking.service_type_id)
            end = start + timedelta(minutes=service_type.effective_duration)
            policy = CalendarService.get_policy(calendar)
            BookingService._check_slot(
                db, calendar, policy, service_type, start, end, now, force,
                exclude_booking_id=booking.id,
            )

            previous = {"start_time": booking.start_time.isoformat(), "end_time": booking.end_time.isoformat()}
            booking.start_time = start
            booking.end_time = end
            db.flush()

            payload = booking.to_dict()
            payload["previous"] = previous
            event_publisher.record_event(db, calendar, event_publisher.BOOKING_RESCHEDULED, booking.id, payload)
            return booking

        try:
            booking = BookingService._with_retry(db, operation, f"Reschedule of booking {booking_uuid}")
        except (ConflictError, PolicyError) as e:
            logger.info(f"Reschedule of booking {booking_uuid} to {start.isoformat()} rejected: {e.code}")
            raise

        logger.info(f"Rescheduled booking {booking.id} to {booking.start_time.isoformat()}")
        return booking

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def get_booking(db: Session, booking_id) -> Booking:
        return BookingService._load_booking(db, booking_id)

    @staticmethod
    def list_bookings(
            db: Session,
            calendar_id,
            status: Optional[str] = None,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None,
            limit: int = 50,
            offset: int = 0
    ) -> Tuple[int, List[Booking]]:
        calendar = CalendarService.get_calendar(db, calendar_id)
        query = db.query(Booking).filter(Booking.calendar_id == calendar.id)

        if status:
            valid = {s.value for s in BookingStatus}
            if status not in valid:
                raise ValidationError(f"Unknown booking status: {status}", code="invalid_status")
            query = query.filter(Booking.status == status)
        if start:
            query = query.filter(Booking.start_time >= ensure_aware(start, "start"))
        if end:
            query = query.filter(Booking.start_time < ensure_aware(end, "end"))

        total = query.count()
        bookings = query.order_by(Booking.start_time.asc()).offset(offset).limit(limit).all()
        return total, bookings
