# ===== availability_engine/models/availability.py =====
from sqlalchemy import Column, String, Integer, Boolean, Time, Date, ForeignKey, Uuid, UniqueConstraint, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class AvailabilitySchedule(Base):
    """Named weekly schedule of a calendar; at most one is the default"""
    __tablename__ = "availability_schedules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(Uuid, ForeignKey("calendars.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)

    rules = relationship(
        "AvailabilityRule",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="AvailabilityRule.day_of_week",
    )

    __table_args__ = (
        Index(
            "uq_availability_schedules_default",
            "calendar_id",
            unique=True,
            sqlite_where=text("is_default"),
            postgresql_where=text("is_default"),
        ),
    )


class AvailabilityRule(Base):
    """Weekly opening hours for one day of the week"""
    __tablename__ = "availability_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id = Column(Uuid, ForeignKey("availability_schedules.id", ondelete="CASCADE"), nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    schedule = relationship("AvailabilitySchedule", back_populates="rules")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_day_of_week"),
    )


class AvailabilityOverride(Base):
    """Specific date overrides (holidays, time-off, special hours)"""
    __tablename__ = "availability_overrides"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(Uuid, ForeignKey("calendars.id", ondelete="CASCADE"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False)  # False = day off
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String, nullable=True)  # "Holiday", "Vacation", etc.

    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("calendar_id", "date", name="uq_availability_overrides_calendar_date"),
    )
