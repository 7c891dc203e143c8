# ============================================================================
# availability_engine/services/calendar/calendar_service.py
# Calendars, their booking policy and their service types
# ============================================================================
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import NotFoundError, ValidationError
from availability_engine.models.business import Business
from availability_engine.models.calendar import Calendar, CalendarSettings
from availability_engine.models.service_type import ServiceType
from availability_engine.utils.time_utils import get_timezone

logger = logging.getLogger(__name__)
settings = get_settings()

# Only the daily cap has a meaning for "unset"
NULLABLE_SETTINGS = {"max_bookings_per_day"}


@dataclass(frozen=True)
class CalendarPolicy:
    """Immutable snapshot of a calendar's booking rules"""
    slot_duration: int
    buffer_time: int = 0
    minimum_notice_hours: int = 0
    booking_window_days: int = 60
    max_bookings_per_day: Optional[int] = None
    allow_waitlist: bool = False
    confirmation_required: bool = False
    allow_cancellations: bool = True
    cancellation_deadline_hours: int = 0

    @classmethod
    def from_settings(cls, row: Optional[CalendarSettings]) -> "CalendarPolicy":
        if row is None:
            return cls(
                slot_duration=settings.DEFAULT_SLOT_DURATION,
                booking_window_days=settings.DEFAULT_BOOKING_WINDOW_DAYS,
            )
        return cls(
            slot_duration=row.slot_duration,
            buffer_time=row.buffer_time or 0,
            minimum_notice_hours=row.minimum_notice_hours or 0,
            booking_window_days=row.booking_window_days,
            max_bookings_per_day=row.max_bookings_per_day,
            allow_waitlist=bool(row.allow_waitlist),
            confirmation_required=bool(row.confirmation_required),
            allow_cancellations=bool(row.allow_cancellations),
            cancellation_deadline_hours=row.cancellation_deadline_hours or 0,
        )


def _parse_uuid(value, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}: {value}", code="invalid_id", details={"field": label})


class CalendarService:
    """Calendar lookup, creation and policy management"""

    @staticmethod
    def parse_id(value, label: str = "id") -> uuid.UUID:
        return _parse_uuid(value, label)

    @staticmethod
    def create_business(db: Session, name: str, timezone: str = "UTC") -> Business:
        get_timezone(timezone)
        business = Business(id=uuid.uuid4(), name=name, timezone=timezone)
        db.add(business)
        db.commit()
        logger.info(f"Created business {business.id}: {name}")
        return business

    @staticmethod
    def get_business(db: Session, business_id) -> Business:
        business = db.get(Business, _parse_uuid(business_id, "business_id"))
        if not business:
            raise NotFoundError(f"Business {business_id} not found")
        return business

    @staticmethod
    def create_calendar(
            db: Session,
            business_id,
            name: str,
            slug: str,
            timezone: Optional[str] = None,
            policy: Optional[Dict[str, Any]] = None
    ) -> Calendar:
        """Create a calendar together with its settings row"""
        business = CalendarService.get_business(db, business_id)
        tz_name = timezone or business.timezone or settings.DEFAULT_TIMEZONE
        get_timezone(tz_name)

        if db.query(Calendar).filter(Calendar.slug == slug).first():
            raise ValidationError(f"Calendar slug '{slug}' is already in use", code="duplicate_slug")

        calendar = Calendar(
            id=uuid.uuid4(),
            business_id=business.id,
            name=name,
            slug=slug,
            timezone=tz_name,
            is_active=True,
        )
        values = {
            "slot_duration": settings.DEFAULT_SLOT_DURATION,
            "booking_window_days": settings.DEFAULT_BOOKING_WINDOW_DAYS,
        }
        values.update({k: v for k, v in (policy or {}).items() if v is not None})
        calendar.settings = CalendarSettings(id=uuid.uuid4(), **values)

        db.add(calendar)
        db.commit()
        logger.info(f"Created calendar {calendar.id} ({slug}) for business {business.id}")
        return calendar

    @staticmethod
    def get_calendar(db: Session, calendar_id, for_update: bool = False) -> Calendar:
        """
        Load a calendar or raise NotFoundError.

        With for_update=True the row is locked until the transaction ends;
        booking writers use this to serialize per calendar.
        """
        query = db.query(Calendar).filter(Calendar.id == _parse_uuid(calendar_id, "calendar_id"))
        if for_update:
            query = query.with_for_update().populate_existing()
        calendar = query.first()
        if not calendar:
            raise NotFoundError(f"Calendar {calendar_id} not found", code="calendar_not_found")
        return calendar

    @staticmethod
    def get_policy(calendar: Calendar) -> CalendarPolicy:
        return CalendarPolicy.from_settings(calendar.settings)

    @staticmethod
    def update_settings(db: Session, calendar_id, changes: Dict[str, Any]) -> Calendar:
        calendar = CalendarService.get_calendar(db, calendar_id)
        nulled = sorted(field for field, value in changes.items() if value is None and field not in NULLABLE_SETTINGS)
        if nulled:
            raise ValidationError(
                f"Settings cannot be null: {', '.join(nulled)}",
                code="invalid_setting",
                details={"fields": nulled},
            )
        if calendar.settings is None:
            calendar.settings = CalendarSettings(
                id=uuid.uuid4(),
                slot_duration=settings.DEFAULT_SLOT_DURATION,
                booking_window_days=settings.DEFAULT_BOOKING_WINDOW_DAYS,
            )
        for field, value in changes.items():
            setattr(calendar.settings, field, value)
        db.commit()
        logger.info(f"Updated settings of calendar {calendar.id}: {sorted(changes)}")
        return calendar

    @staticmethod
    def serialize(calendar: Calendar) -> Dict[str, Any]:
        return {
            "id": str(calendar.id),
            "business_id": str(calendar.business_id),
            "name": calendar.name,
            "slug": calendar.slug,
            "timezone": calendar.timezone,
            "is_active": calendar.is_active,
            "settings": calendar.settings.to_dict() if calendar.settings else {},
        }


class ServiceTypeService:
    """CRUD for the services bookable on a calendar"""

    @staticmethod
    def create_service_type(db: Session, calendar_id, **fields) -> ServiceType:
        calendar = CalendarService.get_calendar(db, calendar_id)
        price = fields.pop("price", None)
        service_type = ServiceType(
            id=uuid.uuid4(),
            calendar_id=calendar.id,
            price=Decimal(str(price)) if price is not None else None,
            is_active=True,
            **fields,
        )
        db.add(service_type)
        db.commit()
        logger.info(f"Created service type {service_type.id}: {service_type.name}")
        return service_type

    @staticmethod
    def get_service_type(db: Session, service_type_id, calendar_id=None) -> ServiceType:
        service_type = db.get(ServiceType, _parse_uuid(service_type_id, "service_type_id"))
        if not service_type or (
                calendar_id is not None and service_type.calendar_id != _parse_uuid(calendar_id, "calendar_id")
        ):
            raise NotFoundError(f"Service type {service_type_id} not found", code="service_type_not_found")
        return service_type

    @staticmethod
    def get_bookable_service_type(db: Session, service_type_id, calendar_id) -> ServiceType:
        service_type = ServiceTypeService.get_service_type(db, service_type_id, calendar_id)
        if not service_type.is_active:
            raise NotFoundError(f"Service type {service_type_id} is not bookable", code="service_type_inactive")
        return service_type

    @staticmethod
    def list_service_types(db: Session, calendar_id, include_inactive: bool = False) -> List[ServiceType]:
        calendar = CalendarService.get_calendar(db, calendar_id)
        query = db.query(ServiceType).filter(ServiceType.calendar_id == calendar.id)
        if not include_inactive:
            query = query.filter(ServiceType.is_active.is_(True))
        return query.order_by(ServiceType.name.asc()).all()

    @staticmethod
    def update_service_type(db: Session, service_type_id, changes: Dict[str, Any]) -> ServiceType:
        service_type = ServiceTypeService.get_service_type(db, service_type_id)
        for field, value in changes.items():
            if field == "price" and value is not None:
                value = Decimal(str(value))
            setattr(service_type, field, value)
        db.commit()
        return service_type

    @staticmethod
    def serialize(service_type: ServiceType) -> Dict[str, Any]:
        return {
            "id": str(service_type.id),
            "calendar_id": str(service_type.calendar_id),
            "name": service_type.name,
            "description": service_type.description,
            "duration": service_type.duration,
            "formatted_duration": service_type.formatted_duration,
            "effective_duration": service_type.effective_duration,
            "price": float(service_type.price) if service_type.price is not None else None,
            "preparation_time": service_type.preparation_time,
            "cleanup_time": service_type.cleanup_time,
            "max_attendees": service_type.max_attendees,
            "is_active": service_type.is_active,
        }
