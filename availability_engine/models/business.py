# availability_engine/models/business.py
"""
Business Model - the tenant that owns calendars
"""
from sqlalchemy import Column, String, Boolean, Uuid
from sqlalchemy.orm import relationship
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    timezone = Column(String(50), default="UTC", nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    calendars = relationship("Calendar", back_populates="business")

    def __repr__(self):
        return f"<Business(id={self.id}, name={self.name})>"
