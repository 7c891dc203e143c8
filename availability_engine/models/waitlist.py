# availability_engine/models/waitlist.py
from enum import Enum

from sqlalchemy import Column, String, Date, Time, ForeignKey, Index, Uuid
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class WaitlistStatus(str, Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    CONVERTED = "converted"
    EXPIRED = "expired"


class WaitlistFlexibility(str, Enum):
    SPECIFIC = "specific"  # only inside preferred_time_start..preferred_time_end
    MORNING = "morning"  # starts before 12:00
    AFTERNOON = "afternoon"  # starts at or after 12:00
    ANYTIME = "anytime"


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(Uuid, ForeignKey("calendars.id", ondelete="CASCADE"), nullable=False)
    service_type_id = Column(Uuid, ForeignKey("service_types.id"), nullable=False)

    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(320), nullable=True)

    preferred_date = Column(Date, nullable=False)
    preferred_time_start = Column(Time, nullable=True)
    preferred_time_end = Column(Time, nullable=True)
    flexibility = Column(String(20), default=WaitlistFlexibility.ANYTIME.value, nullable=False)

    status = Column(String(20), default=WaitlistStatus.WAITING.value, nullable=False)
    booking_id = Column(Uuid, nullable=True)  # set when converted
    notified_by_event_id = Column(Uuid, nullable=True, unique=True)  # outbox event that freed the slot

    created_at = Column(UTCDateTime, default=utcnow)
    notified_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_waitlist_calendar_date_status", "calendar_id", "preferred_date", "status"),
    )

    def to_dict(self):
        return {
            "id": str(self.id),
            "calendar_id": str(self.calendar_id),
            "service_type_id": str(self.service_type_id),
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "preferred_date": self.preferred_date.isoformat(),
            "preferred_time_start": self.preferred_time_start.isoformat() if self.preferred_time_start else None,
            "preferred_time_end": self.preferred_time_end.isoformat() if self.preferred_time_end else None,
            "flexibility": self.flexibility,
            "status": self.status,
            "booking_id": str(self.booking_id) if self.booking_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "notified_at": self.notified_at.isoformat() if self.notified_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
