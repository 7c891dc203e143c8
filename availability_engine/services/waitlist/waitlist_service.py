# availability_engine/services/waitlist/waitlist_service.py
import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import NotFoundError, PolicyError, ValidationError
from availability_engine.models.domain_event import DomainEvent
from availability_engine.models.waitlist import WaitlistEntry, WaitlistFlexibility, WaitlistStatus
from availability_engine.services.availability.availability_service import AvailabilityService
from availability_engine.services.availability.slot_generator import Slot
from availability_engine.services.calendar.calendar_service import CalendarService, ServiceTypeService, _parse_uuid
from availability_engine.services.events import event_publisher
from availability_engine.utils.time_utils import ensure_aware, get_timezone, local_date, local_day_bounds, to_local, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()

NOON = time(12, 0)
OPEN_STATUSES = (WaitlistStatus.WAITING.value, WaitlistStatus.NOTIFIED.value)


def slot_matches_entry(entry: WaitlistEntry, slot: Slot, tz) -> bool:
    """Does a freed slot satisfy the customer's time preference?"""
    local_start = to_local(tz, slot.start_time)
    if local_start.date() != entry.preferred_date:
        return False

    flexibility = entry.flexibility
    if flexibility == WaitlistFlexibility.SPECIFIC.value:
        local_end = to_local(tz, slot.end_time)
        return (
            entry.preferred_time_start <= local_start.time()
            and local_end.date() == entry.preferred_date
            and local_end.time() <= entry.preferred_time_end
        )
    if flexibility == WaitlistFlexibility.MORNING.value:
        return local_start.time() < NOON
    if flexibility == WaitlistFlexibility.AFTERNOON.value:
        return local_start.time() >= NOON
    return True


class WaitlistService:
    """Waitlist entries and the reaction to freed-up slots"""

    @staticmethod
    def add_to_waitlist(
            db: Session,
            calendar_id,
            service_type_id,
            customer_name: str,
            preferred_date: date,
            customer_email: Optional[str] = None,
            preferred_time_start: Optional[time] = None,
            preferred_time_end: Optional[time] = None,
            flexibility: str = WaitlistFlexibility.ANYTIME.value,
            now: Optional[datetime] = None
    ) -> WaitlistEntry:
        now = ensure_aware(now, "now") if now else utcnow()
        calendar = CalendarService.get_calendar(db, calendar_id)
        if not CalendarService.get_policy(calendar).allow_waitlist:
            raise PolicyError("This calendar does not offer a waitlist.", code="waitlist_disabled")

        service_type = ServiceTypeService.get_bookable_service_type(db, service_type_id, calendar.id)

        if flexibility not in {f.value for f in WaitlistFlexibility}:
            raise ValidationError(f"Unknown flexibility: {flexibility}", code="invalid_flexibility")
        if flexibility == WaitlistFlexibility.SPECIFIC.value:
            if preferred_time_start is None or preferred_time_end is None:
                raise ValidationError(
                    "A specific waitlist preference needs preferred_time_start and preferred_time_end",
                    code="invalid_time_range",
                )
            if preferred_time_start >= preferred_time_end:
                raise ValidationError("preferred_time_start must be before preferred_time_end", code="invalid_time_range")

        tz = get_timezone(calendar.timezone)
        if preferred_date < local_date(tz, now):
            raise ValidationError("preferred_date is in the past", code="date_in_past")

        # The entry lapses at the end of the preferred day, or earlier when that is far away
        expires_at = min(local_day_bounds(tz, preferred_date)[1], now + timedelta(days=settings.WAITLIST_EXPIRY_DAYS))

        entry = WaitlistEntry(
            id=uuid.uuid4(),
            calendar_id=calendar.id,
            service_type_id=service_type.id,
            customer_name=customer_name,
            customer_email=customer_email,
            preferred_date=preferred_date,
            preferred_time_start=preferred_time_start,
            preferred_time_end=preferred_time_end,
            flexibility=flexibility,
            status=WaitlistStatus.WAITING.value,
            expires_at=expires_at,
        )
        db.add(entry)
        db.commit()
        logger.info(f"Waitlist entry {entry.id} for calendar {calendar.id} on {preferred_date}")
        return entry

    @staticmethod
    def get_entry(db: Session, entry_id) -> WaitlistEntry:
        entry = db.get(WaitlistEntry, _parse_uuid(entry_id, "waitlist_entry_id"))
        if not entry:
            raise NotFoundError(f"Waitlist entry {entry_id} not found", code="waitlist_entry_not_found")
        return entry

    @staticmethod
    def list_entries(db: Session, calendar_id, status: Optional[str] = None) -> List[WaitlistEntry]:
        calendar = CalendarService.get_calendar(db, calendar_id)
        query = db.query(WaitlistEntry).filter(WaitlistEntry.calendar_id == calendar.id)
        if status:
            query = query.filter(WaitlistEntry.status == status)
        return query.order_by(WaitlistEntry.created_at.desc()).all()

    @staticmethod
    def update_status(db: Session, entry_id, status: str, now: Optional[datetime] = None) -> WaitlistEntry:
        if status not in {s.value for s in WaitlistStatus}:
            raise ValidationError(f"Unknown waitlist status: {status}", code="invalid_status")
        entry = WaitlistService.get_entry(db, entry_id)
        entry.status = status
        if status == WaitlistStatus.NOTIFIED.value:
            entry.notified_at = ensure_aware(now, "now") if now else utcnow()
        db.commit()
        return entry

    @staticmethod
    def remove_entry(db: Session, entry_id) -> None:
        entry = WaitlistService.get_entry(db, entry_id)
        db.delete(entry)
        db.commit()

    @staticmethod
    def mark_converted(db: Session, entry_id, calendar_id: uuid.UUID, booking_id: uuid.UUID) -> WaitlistEntry:
        """Link an entry to the booking made from it. Runs in the booking's transaction."""
        entry = WaitlistService.get_entry(db, entry_id)
        if entry.calendar_id != calendar_id:
            raise NotFoundError(f"Waitlist entry {entry_id} not found", code="waitlist_entry_not_found")
        if entry.status not in OPEN_STATUSES:
            raise ValidationError(
                f"Waitlist entry is already {entry.status}",
                code="waitlist_entry_closed",
                details={"status": entry.status},
            )
        entry.status = WaitlistStatus.CONVERTED.value
        entry.booking_id = booking_id
        return entry

    @staticmethod
    def handle_booking_cancelled(db: Session, event: DomainEvent, now: Optional[datetime] = None) -> Optional[WaitlistEntry]:
        """
        Notify the longest-waiting matching entry when a booking frees time.

        Used for booking.cancelled and booking.rescheduled; for the latter the
        freed time is the booking's previous slot.
        """
        now = ensure_aware(now, "now") if now else utcnow()

        # A redelivered event must not notify a second entry for the same slot
        already_notified = db.query(WaitlistEntry).filter(
            WaitlistEntry.notified_by_event_id == event.id
        ).first()
        if already_notified:
            logger.debug(f"Event {event.id} already notified waitlist entry {already_notified.id}")
            return already_notified

        payload = event.payload or {}
        freed = payload.get("previous") or payload
        if not freed.get("start_time"):
            return None

        calendar = CalendarService.get_calendar(db, event.calendar_id)
        tz = get_timezone(calendar.timezone)
        day = local_date(tz, datetime.fromisoformat(freed["start_time"]))

        entries = db.query(WaitlistEntry).filter(
            WaitlistEntry.calendar_id == calendar.id,
            WaitlistEntry.preferred_date == day,
            WaitlistEntry.status == WaitlistStatus.WAITING.value
        ).order_by(WaitlistEntry.created_at.asc()).all()
        if not entries:
            return None

        slots_by_service: Dict[uuid.UUID, List[Slot]] = {}
        for entry in entries:
            if entry.expires_at and entry.expires_at <= now:
                continue
            if entry.service_type_id not in slots_by_service:
                slots_by_service[entry.service_type_id] = AvailabilityService.get_available_slots(
                    db, calendar.id, entry.service_type_id, start_date=day, days=1, now=now
                )
            match = next(
                (slot for slot in slots_by_service[entry.service_type_id] if slot_matches_entry(entry, slot, tz)),
                None,
            )
            if match is None:
                continue

            entry.status = WaitlistStatus.NOTIFIED.value
            entry.notified_at = now
            entry.notified_by_event_id = event.id
            payload = entry.to_dict()
            payload["slot"] = match.to_dict()
            payload["freed_by_booking_id"] = str(event.aggregate_id)
            event_publisher.record_event(db, calendar, event_publisher.WAITLIST_NOTIFIED, entry.id, payload)
            db.commit()
            logger.info(f"Notified waitlist entry {entry.id} about {match.start_time.isoformat()}")
            return entry

        logger.debug(f"No waitlist entry matches the time freed on calendar {calendar.id} ({day})")
        return None

    @staticmethod
    def expire_entries(db: Session, now: Optional[datetime] = None) -> int:
        now = ensure_aware(now, "now") if now else utcnow()
        entries = db.query(WaitlistEntry).filter(
            WaitlistEntry.status.in_(OPEN_STATUSES),
            WaitlistEntry.expires_at.isnot(None),
            WaitlistEntry.expires_at <= now
        ).all()
        for entry in entries:
            entry.status = WaitlistStatus.EXPIRED.value
        db.commit()
        if entries:
            logger.info(f"Expired {len(entries)} waitlist entries")
        return len(entries)
