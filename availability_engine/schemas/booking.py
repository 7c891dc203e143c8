# availability_engine/schemas/booking.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CustomerInfo(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[str] = Field(None, max_length=320)
    customer_phone: Optional[str] = Field(None, max_length=32)

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and "@" not in v:
            raise ValueError("Invalid email address")
        return v


class BookingCreate(CustomerInfo):
    """Booking request; end_time is derived from the service when omitted"""
    service_type_id: str
    start_time: datetime = Field(..., description="Requested start (ISO 8601 with offset)")
    end_time: Optional[datetime] = Field(None, description="Must match the service length if given")
    notes: Optional[str] = None
    payment_confirmed: bool = False
    waitlist_entry_id: Optional[str] = None
    booking_source: str = Field("web", pattern=r"^(web|api|staff|waitlist)$")
    force: bool = Field(False, description="Staff override of notice/window/opening-hours policy")


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    force: bool = False


class BookingReschedule(BaseModel):
    start_time: datetime
    force: bool = False


class BookingResponse(BaseModel):
    id: str
    calendar_id: str
    service_type_id: str
    customer_name: str
    customer_email: Optional[str]
    customer_phone: Optional[str]
    notes: Optional[str]
    start_time: datetime
    end_time: datetime
    total_price: Optional[float]
    payment_confirmed: bool
    status: str
    booking_source: Optional[str]
    created_at: Optional[datetime]
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]


class BookingListResponse(BaseModel):
    calendar_id: str
    total: int
    bookings: List[BookingResponse]
