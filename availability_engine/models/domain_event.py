# ===== availability_engine/models/domain_event.py =====
from sqlalchemy import Column, String, Integer, Text, JSON, Index, Uuid
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class DomainEvent(Base):
    """
    Outbox of domain events ("booking.created", "booking.cancelled", ...).

    Rows are written in the same transaction as the state change they
    describe and dispatched afterwards by the event dispatcher.
    """
    __tablename__ = "domain_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, nullable=False)
    calendar_id = Column(Uuid, nullable=False)
    aggregate_id = Column(Uuid, nullable=False)  # e.g. the booking id

    event_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False)

    # Dispatch tracking
    status = Column(String(20), default="pending", nullable=False)  # pending, dispatched, failed
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)

    created_at = Column(UTCDateTime, default=utcnow)
    dispatched_at = Column(UTCDateTime)

    __table_args__ = (
        Index("ix_domain_events_status_created", "status", "created_at"),
    )
