# ============================================================================
# FILE: availability_engine/api/v1/calendars.py
# Businesses, calendars, booking policy and service types - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
import logging

from availability_engine.config.database import get_db
from availability_engine.schemas.calendar import (
    BusinessCreate,
    BusinessResponse,
    CalendarCreate,
    CalendarResponse,
    CalendarSettingsPayload,
    ServiceTypeCreate,
    ServiceTypeResponse,
    ServiceTypeUpdate,
)
from availability_engine.services.calendar.calendar_service import CalendarService, ServiceTypeService

logger = logging.getLogger(__name__)
router = APIRouter()


def _business_to_response(business) -> BusinessResponse:
    return BusinessResponse(id=str(business.id), name=business.name, timezone=business.timezone)


# ========== BUSINESSES ==========

@router.post("/businesses", response_model=BusinessResponse, status_code=201)
def create_business(request: BusinessCreate, db: Session = Depends(get_db)):
    business = CalendarService.create_business(db, request.name, request.timezone)
    return _business_to_response(business)


@router.get("/businesses/{business_id}", response_model=BusinessResponse)
def get_business(business_id: str, db: Session = Depends(get_db)):
    return _business_to_response(CalendarService.get_business(db, business_id))


# ========== CALENDARS ==========

@router.post("/calendars", response_model=CalendarResponse, status_code=201)
def create_calendar(request: CalendarCreate, db: Session = Depends(get_db)):
    calendar = CalendarService.create_calendar(
        db,
        business_id=request.business_id,
        name=request.name,
        slug=request.slug,
        timezone=request.timezone,
        policy=request.settings.model_dump(exclude_none=True),
    )
    return CalendarService.serialize(calendar)


@router.get("/calendars/{calendar_id}", response_model=CalendarResponse)
def get_calendar(calendar_id: str, db: Session = Depends(get_db)):
    return CalendarService.serialize(CalendarService.get_calendar(db, calendar_id))


@router.patch("/calendars/{calendar_id}/settings", response_model=CalendarResponse)
def update_calendar_settings(
        calendar_id: str,
        request: CalendarSettingsPayload,
        db: Session = Depends(get_db)
):
    """Partial update; send max_bookings_per_day: null to remove the daily cap"""
    calendar = CalendarService.update_settings(db, calendar_id, request.model_dump(exclude_unset=True))
    return CalendarService.serialize(calendar)


# ========== SERVICE TYPES ==========

@router.post("/calendars/{calendar_id}/service-types", response_model=ServiceTypeResponse, status_code=201)
def create_service_type(calendar_id: str, request: ServiceTypeCreate, db: Session = Depends(get_db)):
    service_type = ServiceTypeService.create_service_type(db, calendar_id, **request.model_dump())
    return ServiceTypeService.serialize(service_type)


@router.get("/calendars/{calendar_id}/service-types", response_model=List[ServiceTypeResponse])
def list_service_types(
        calendar_id: str,
        include_inactive: bool = Query(False),
        db: Session = Depends(get_db)
):
    return [
        ServiceTypeService.serialize(s)
        for s in ServiceTypeService.list_service_types(db, calendar_id, include_inactive)
    ]


@router.patch("/service-types/{service_type_id}", response_model=ServiceTypeResponse)
def update_service_type(service_type_id: str, request: ServiceTypeUpdate, db: Session = Depends(get_db)):
    service_type = ServiceTypeService.update_service_type(
        db, service_type_id, request.model_dump(exclude_unset=True)
    )
    return ServiceTypeService.serialize(service_type)
