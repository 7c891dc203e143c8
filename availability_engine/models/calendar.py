# availability_engine/models/calendar.py
"""
Calendar Model - the unit of scheduling isolation.

A business may own several calendars (one per staff member, room, ...).
Every schedule, service type, booking and waitlist entry hangs off exactly
one calendar, and booking writes serialize per calendar row.
"""
from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class Calendar(Base):
    __tablename__ = "calendars"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    timezone = Column(String(50), default="UTC", nullable=False)  # IANA name, e.g. "Europe/Amsterdam"
    is_active = Column(Boolean, default=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    business = relationship("Business", back_populates="calendars")
    settings = relationship(
        "CalendarSettings",
        back_populates="calendar",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Calendar(id={self.id}, slug={self.slug})>"


class CalendarSettings(Base):
    """Booking policy of a calendar"""
    __tablename__ = "calendar_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(
        Uuid,
        ForeignKey("calendars.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    slot_duration = Column(Integer, default=30, nullable=False)  # grid step in minutes
    buffer_time = Column(Integer, default=0, nullable=False)  # minutes between bookings
    minimum_notice_hours = Column(Integer, default=0, nullable=False)
    booking_window_days = Column(Integer, default=60, nullable=False)
    max_bookings_per_day = Column(Integer, nullable=True)  # None = unlimited

    allow_waitlist = Column(Boolean, default=False, nullable=False)
    confirmation_required = Column(Boolean, default=False, nullable=False)
    allow_cancellations = Column(Boolean, default=True, nullable=False)
    cancellation_deadline_hours = Column(Integer, default=0, nullable=False)

    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    calendar = relationship("Calendar", back_populates="settings")

    def to_dict(self):
        return {
            "slot_duration": self.slot_duration,
            "buffer_time": self.buffer_time,
            "minimum_notice_hours": self.minimum_notice_hours,
            "booking_window_days": self.booking_window_days,
            "max_bookings_per_day": self.max_bookings_per_day,
            "allow_waitlist": self.allow_waitlist,
            "confirmation_required": self.confirmation_required,
            "allow_cancellations": self.allow_cancellations,
            "cancellation_deadline_hours": self.cancellation_deadline_hours,
        }
