# availability_engine/models/recurring_pattern.py
from sqlalchemy import Column, String, Boolean, Date, ForeignKey, JSON, Uuid
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class RecurringPattern(Base):
    """
    Higher level availability generator (weekly, biweekly, monthly, seasonal).

    schedule_data is persisted as JSON but is only ever read and written
    through the typed pattern schemas in availability_engine.schemas.schedule.
    """
    __tablename__ = "recurring_patterns"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    calendar_id = Column(Uuid, ForeignKey("calendars.id", ondelete="CASCADE"), nullable=False, index=True)

    pattern_type = Column(String(20), nullable=False)  # weekly, biweekly, monthly, seasonal
    pattern_name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    schedule_data = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
