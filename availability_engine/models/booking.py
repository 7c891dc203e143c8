# availability_engine/models/booking.py
from enum import Enum

from sqlalchemy import Column, String, Text, Numeric, Boolean, ForeignKey, Index, CheckConstraint, Uuid, text
from sqlalchemy.orm import relationship
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"


# Bookings in these states occupy calendar time
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

_ACTIVE_PREDICATE = text("status IN ('pending', 'confirmed')")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # References
    calendar_id = Column(Uuid, ForeignKey("calendars.id", ondelete="CASCADE"), nullable=False)
    service_type_id = Column(Uuid, ForeignKey("service_types.id"), nullable=False)
    waitlist_entry_id = Column(Uuid, nullable=True)

    # Customer info
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(320), nullable=True)
    customer_phone = Column(String(32), nullable=True)
    notes = Column(Text, nullable=True)

    # Booking details, half-open interval [start_time, end_time)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=True)
    payment_confirmed = Column(Boolean, default=False, nullable=False)

    # Status tracking
    status = Column(String(20), default=BookingStatus.PENDING.value, nullable=False)
    booking_source = Column(String(20), default="web")  # web, api, staff, waitlist

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
    confirmed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    service_type = relationship("ServiceType")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        Index("ix_bookings_calendar_start", "calendar_id", "start_time"),
        # At most one active booking may start at the same instant on a calendar.
        # PostgreSQL additionally gets an exclusion constraint on overlapping
        # ranges in the migrations.
        Index(
            "uq_bookings_calendar_active_start",
            "calendar_id",
            "start_time",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
    )

    def __repr__(self):
        return f"<Booking(id={self.id}, calendar_id={self.calendar_id}, start={self.start_time}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "calendar_id": str(self.calendar_id),
            "service_type_id": str(self.service_type_id),
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "total_price": float(self.total_price) if self.total_price is not None else None,
            "payment_confirmed": self.payment_confirmed,
            "status": self.status,
            "booking_source": self.booking_source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }
