# availability_engine/models/service_type.py
"""
ServiceType Model - what can be booked on a calendar and for how long
"""
from sqlalchemy import Column, String, Numeric, Integer, ForeignKey, Boolean, Text, Uuid
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class ServiceType(Base):
    __tablename__ = "service_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(Uuid, ForeignKey("calendars.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Numeric(10, 2), nullable=True)
    preparation_time = Column(Integer, default=0, nullable=False)  # minutes before the service
    cleanup_time = Column(Integer, default=0, nullable=False)  # minutes after the service
    max_attendees = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ServiceType(id={self.id}, name={self.name}, calendar_id={self.calendar_id})>"

    @property
    def effective_duration(self) -> int:
        """Minutes a booking of this service occupies on the calendar"""
        return (self.preparation_time or 0) + self.duration + (self.cleanup_time or 0)

    @property
    def formatted_duration(self) -> str:
        """Return human-readable duration string"""
        hours = self.duration // 60
        minutes = self.duration % 60

        if hours > 0 and minutes > 0:
            return f"{hours}h {minutes}m"
        elif hours > 0:
            return f"{hours}h"
        else:
            return f"{minutes}m"
