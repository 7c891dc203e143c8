# ============================================================================
# FILE: availability_engine/api/v1/availability.py
# Read-only availability endpoints
# IMPORTANT: Specific routes MUST come before parameterized routes
# ============================================================================
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from availability_engine.config.database import get_db
from availability_engine.schemas.availability import (
    AvailabilityResponse,
    AvailabilitySummaryResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    NextAvailableResponse,
    TimeSlot,
)
from availability_engine.services.availability.availability_service import AvailabilityService
from availability_engine.services.availability.conflict_checker import ConflictChecker
from availability_engine.services.calendar.calendar_service import CalendarService
from availability_engine.utils.time_utils import get_timezone, local_date, utcnow

router = APIRouter()


def _slot_to_response(slot) -> TimeSlot:
    return TimeSlot(start_time=slot.start_time, end_time=slot.end_time)


@router.get("/calendars/{calendar_id}/availability/next-available", response_model=NextAvailableResponse)
def get_next_available_slot(
        calendar_id: str,
        service_type_id: str = Query(...),
        db: Session = Depends(get_db)
):
    """Earliest bookable slot within the booking window"""
    slot = AvailabilityService.next_available(db, calendar_id, service_type_id)
    if slot is None:
        return NextAvailableResponse(available=False, message="No availability within the booking window")
    return NextAvailableResponse(available=True, slot=_slot_to_response(slot))


@router.get("/calendars/{calendar_id}/availability/summary", response_model=AvailabilitySummaryResponse)
def get_availability_summary(
        calendar_id: str,
        service_type_id: str = Query(...),
        start_date: Optional[date] = Query(None, description="Defaults to today in the calendar timezone"),
        days: int = Query(7, ge=1),
        db: Session = Depends(get_db)
):
    summary = AvailabilityService.get_availability_summary(
        db, calendar_id, service_type_id, start_date=start_date, days=days
    )
    return AvailabilitySummaryResponse(calendar_id=calendar_id, service_type_id=service_type_id, days=summary)


@router.post("/calendars/{calendar_id}/availability/check", response_model=ConflictCheckResponse)
def check_conflict(calendar_id: str, request: ConflictCheckRequest, db: Session = Depends(get_db)):
    """Would [start_time, end_time) collide with an existing booking?"""
    conflicts = ConflictChecker.find_conflicts(
        db, calendar_id, request.start_time, request.end_time,
        exclude_booking_id=request.exclude_booking_id,
    )
    return ConflictCheckResponse(
        has_conflict=bool(conflicts),
        conflicting_booking_ids=[str(b.id) for b in conflicts],
    )


@router.get("/calendars/{calendar_id}/availability", response_model=AvailabilityResponse)
def get_availability(
        calendar_id: str,
        service_type_id: str = Query(...),
        start_date: Optional[date] = Query(None, description="Defaults to today in the calendar timezone"),
        days: int = Query(7, ge=1, description="Number of days to search"),
        limit: Optional[int] = Query(None, ge=1, description="Maximum number of slots to return"),
        db: Session = Depends(get_db)
):
    """Ordered list of bookable slots for a service type"""
    calendar = CalendarService.get_calendar(db, calendar_id)
    if start_date is None:
        start_date = local_date(get_timezone(calendar.timezone), utcnow())

    slots = AvailabilityService.get_available_slots(
        db, calendar.id, service_type_id, start_date=start_date, days=days, limit=limit
    )
    return AvailabilityResponse(
        calendar_id=str(calendar.id),
        service_type_id=service_type_id,
        timezone=calendar.timezone,
        start_date=start_date,
        days=days,
        total_slots=len(slots),
        slots=[_slot_to_response(s) for s in slots],
    )
