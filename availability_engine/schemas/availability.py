# availability_engine/schemas/availability.py
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class TimeSlot(BaseModel):
    """Available time slot, half-open [start_time, end_time)"""
    start_time: datetime = Field(..., description="Slot start time")
    end_time: datetime = Field(..., description="Slot end time")


class AvailabilityResponse(BaseModel):
    calendar_id: str
    service_type_id: str
    timezone: str = Field(..., description="Calendar timezone used for opening hours")
    start_date: date
    days: int
    total_slots: int
    slots: List[TimeSlot] = Field(default_factory=list)


class NextAvailableResponse(BaseModel):
    available: bool
    slot: Optional[TimeSlot] = None
    message: Optional[str] = None


class OpenInterval(BaseModel):
    start: str
    end: str


class DaySummary(BaseModel):
    date: date
    source: Literal["override", "pattern", "rule", "closed"]
    is_open: bool
    open_intervals: List[OpenInterval]
    available_slots: int
    booked_count: int
    daily_limit_reached: bool


class AvailabilitySummaryResponse(BaseModel):
    calendar_id: str
    service_type_id: str
    days: List[DaySummary]


class ConflictCheckRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    exclude_booking_id: Optional[str] = None


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicting_booking_ids: List[str] = Field(default_factory=list)
