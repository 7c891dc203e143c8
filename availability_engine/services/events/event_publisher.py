# availability_engine/services/events/event_publisher.py
"""Writes domain events to the outbox table inside the caller's transaction"""
import logging
import uuid
from typing import Any, Dict

from sqlalchemy.orm import Session

from availability_engine.models.calendar import Calendar
from availability_engine.models.domain_event import DomainEvent

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_COMPLETED = "booking.completed"
BOOKING_NO_SHOW = "booking.no_show"
BOOKING_RESCHEDULED = "booking.rescheduled"
WAITLIST_NOTIFIED = "waitlist.notified"

VALID_EVENT_TYPES = {
    BOOKING_CREATED,
    BOOKING_CONFIRMED,
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_NO_SHOW,
    BOOKING_RESCHEDULED,
    WAITLIST_NOTIFIED,
}


def record_event(
        db: Session,
        calendar: Calendar,
        event_type: str,
        aggregate_id: uuid.UUID,
        payload: Dict[str, Any]
) -> DomainEvent:
    """
    Add an outbox row to the session. Nothing is committed here; the event
    becomes visible together with the state change it describes.
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(f"Unknown event type: {event_type}")

    event = DomainEvent(
        id=uuid.uuid4(),
        business_id=calendar.business_id,
        calendar_id=calendar.id,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        status="pending",
        attempts=0,
    )
    db.add(event)
    logger.debug(f"Recorded {event_type} for {aggregate_id}")
    return event
