# availability_engine/schemas/waitlist.py
from datetime import date, time
from typing import Literal, Optional

from pydantic import BaseModel, Field


class WaitlistCreate(BaseModel):
    service_type_id: str
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[str] = Field(None, max_length=320)
    preferred_date: date
    preferred_time_start: Optional[time] = None
    preferred_time_end: Optional[time] = None
    flexibility: Literal["specific", "morning", "afternoon", "anytime"] = "anytime"


class WaitlistStatusUpdate(BaseModel):
    status: Literal["waiting", "notified", "converted", "expired"]


class WaitlistEntryResponse(BaseModel):
    id: str
    calendar_id: str
    service_type_id: str
    customer_name: str
    customer_email: Optional[str]
    preferred_date: date
    preferred_time_start: Optional[time]
    preferred_time_end: Optional[time]
    flexibility: str
    status: str
    booking_id: Optional[str]
    created_at: Optional[str]
    notified_at: Optional[str]
    expires_at: Optional[str]
