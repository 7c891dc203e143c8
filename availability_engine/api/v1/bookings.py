# ============================================================================
# FILE: availability_engine/api/v1/bookings.py
# Booking creation and status transitions
# ============================================================================
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from availability_engine.config.database import get_db
from availability_engine.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingListResponse,
    BookingReschedule,
    BookingResponse,
)
from availability_engine.services.booking.booking_service import BookingService
from availability_engine.tasks.event_tasks import schedule_event_dispatch

router = APIRouter()


@router.post("/calendars/{calendar_id}/bookings", response_model=BookingResponse, status_code=201)
def create_booking(calendar_id: str, request: BookingCreate, db: Session = Depends(get_db)):
    """
    Book a slot. Returns 409 when the time was taken in the meantime and
    422 when the calendar's booking rules forbid it.
    """
    booking = BookingService.create_booking(
        db,
        calendar_id,
        request.service_type_id,
        request.start_time,
        customer_name=request.customer_name,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
        end_time=request.end_time,
        notes=request.notes,
        payment_confirmed=request.payment_confirmed,
        waitlist_entry_id=request.waitlist_entry_id,
        booking_source=request.booking_source,
        force=request.force,
    )
    schedule_event_dispatch()
    return booking.to_dict()


@router.get("/calendars/{calendar_id}/bookings", response_model=BookingListResponse)
def list_bookings(
        calendar_id: str,
        status: Optional[str] = Query(None),
        start: Optional[datetime] = Query(None, description="Bookings starting at or after"),
        end: Optional[datetime] = Query(None, description="Bookings starting before"),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db)
):
    total, bookings = BookingService.list_bookings(
        db, calendar_id, status=status, start=start, end=end, limit=limit, offset=offset
    )
    return BookingListResponse(
        calendar_id=calendar_id,
        total=total,
        bookings=[b.to_dict() for b in bookings],
    )


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: str, db: Session = Depends(get_db)):
    return BookingService.get_booking(db, booking_id).to_dict()


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(booking_id: str, request: BookingCancel, db: Session = Depends(get_db)):
    booking = BookingService.cancel_booking(db, booking_id, reason=request.reason, force=request.force)
    schedule_event_dispatch()
    return booking.to_dict()


@router.post("/bookings/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(booking_id: str, db: Session = Depends(get_db)):
    booking = BookingService.confirm_booking(db, booking_id)
    schedule_event_dispatch()
    return booking.to_dict()


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(booking_id: str, db: Session = Depends(get_db)):
    booking = BookingService.complete_booking(db, booking_id)
    schedule_event_dispatch()
    return booking.to_dict()


@router.post("/bookings/{booking_id}/no-show", response_model=BookingResponse)
def mark_no_show(booking_id: str, db: Session = Depends(get_db)):
    booking = BookingService.mark_no_show(db, booking_id)
    schedule_event_dispatch()
    return booking.to_dict()


@router.post("/bookings/{booking_id}/reschedule", response_model=BookingResponse)
def reschedule_booking(booking_id: str, request: BookingReschedule, db: Session = Depends(get_db)):
    booking = BookingService.reschedule_booking(db, booking_id, request.start_time, force=request.force)
    schedule_event_dispatch()
    return booking.to_dict()
