# ============================================================================
# FILE: availability_engine/api/v1/waitlist.py
# ============================================================================
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from availability_engine.config.database import get_db
from availability_engine.schemas.waitlist import WaitlistCreate, WaitlistEntryResponse, WaitlistStatusUpdate
from availability_engine.services.waitlist.waitlist_service import WaitlistService

router = APIRouter()


@router.post("/calendars/{calendar_id}/waitlist", response_model=WaitlistEntryResponse, status_code=201)
def add_to_waitlist(calendar_id: str, request: WaitlistCreate, db: Session = Depends(get_db)):
    entry = WaitlistService.add_to_waitlist(
        db,
        calendar_id,
        request.service_type_id,
        customer_name=request.customer_name,
        customer_email=request.customer_email,
        preferred_date=request.preferred_date,
        preferred_time_start=request.preferred_time_start,
        preferred_time_end=request.preferred_time_end,
        flexibility=request.flexibility,
    )
    return entry.to_dict()


@router.get("/calendars/{calendar_id}/waitlist", response_model=List[WaitlistEntryResponse])
def list_waitlist(
        calendar_id: str,
        status: Optional[str] = Query(None),
        db: Session = Depends(get_db)
):
    return [e.to_dict() for e in WaitlistService.list_entries(db, calendar_id, status)]


@router.patch("/waitlist/{entry_id}", response_model=WaitlistEntryResponse)
def update_waitlist_status(entry_id: str, request: WaitlistStatusUpdate, db: Session = Depends(get_db)):
    return WaitlistService.update_status(db, entry_id, request.status).to_dict()


@router.delete("/waitlist/{entry_id}", status_code=204)
def remove_from_waitlist(entry_id: str, db: Session = Depends(get_db)):
    WaitlistService.remove_entry(db, entry_id)
