# availability_engine/models/__init__.py
from .base import Base
from .business import Business
from .calendar import Calendar, CalendarSettings
from .availability import AvailabilitySchedule, AvailabilityRule, AvailabilityOverride
from .recurring_pattern import RecurringPattern
from .service_type import ServiceType
from .booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from .waitlist import WaitlistEntry, WaitlistStatus, WaitlistFlexibility
from .domain_event import DomainEvent
from .webhook_endpoint import WebhookEndpoint
from .webhook_delivery import WebhookDelivery

__all__ = [
    "Base",
    "Business",
    "Calendar",
    "CalendarSettings",
    "AvailabilitySchedule",
    "AvailabilityRule",
    "AvailabilityOverride",
    "RecurringPattern",
    "ServiceType",
    "Booking",
    "BookingStatus",
    "ACTIVE_BOOKING_STATUSES",
    "WaitlistEntry",
    "WaitlistStatus",
    "WaitlistFlexibility",
    "DomainEvent",
    "WebhookEndpoint",
    "WebhookDelivery",
]
