# availability_engine/schemas/calendar.py
from typing import Optional

from pydantic import BaseModel, Field


class BusinessCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    timezone: str = Field("UTC", description="IANA timezone name")


class BusinessResponse(BaseModel):
    id: str
    name: str
    timezone: str


class CalendarSettingsPayload(BaseModel):
    """Booking policy of a calendar; every field optional on update"""
    slot_duration: Optional[int] = Field(None, ge=5, le=480, description="Grid step in minutes")
    buffer_time: Optional[int] = Field(None, ge=0, le=240, description="Minutes between bookings")
    minimum_notice_hours: Optional[int] = Field(None, ge=0, le=24 * 90)
    booking_window_days: Optional[int] = Field(None, ge=1, le=730)
    max_bookings_per_day: Optional[int] = Field(None, ge=1)
    allow_waitlist: Optional[bool] = None
    confirmation_required: Optional[bool] = None
    allow_cancellations: Optional[bool] = None
    cancellation_deadline_hours: Optional[int] = Field(None, ge=0)


class CalendarCreate(BaseModel):
    business_id: str
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9][a-z0-9-]*$")
    timezone: Optional[str] = Field(None, description="Defaults to the business timezone")
    settings: CalendarSettingsPayload = Field(default_factory=CalendarSettingsPayload)


class CalendarResponse(BaseModel):
    id: str
    business_id: str
    name: str
    slug: str
    timezone: str
    is_active: bool
    settings: dict


class ServiceTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    duration: int = Field(..., ge=5, le=24 * 60, description="Duration in minutes")
    price: Optional[float] = Field(None, ge=0)
    preparation_time: int = Field(0, ge=0, le=240)
    cleanup_time: int = Field(0, ge=0, le=240)
    max_attendees: int = Field(1, ge=1)


class ServiceTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    duration: Optional[int] = Field(None, ge=5, le=24 * 60)
    price: Optional[float] = Field(None, ge=0)
    preparation_time: Optional[int] = Field(None, ge=0, le=240)
    cleanup_time: Optional[int] = Field(None, ge=0, le=240)
    max_attendees: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class ServiceTypeResponse(BaseModel):
    id: str
    calendar_id: str
    name: str
    description: Optional[str]
    duration: int
    formatted_duration: str
    effective_duration: int
    price: Optional[float]
    preparation_time: int
    cleanup_time: int
    max_attendees: int
    is_active: bool
