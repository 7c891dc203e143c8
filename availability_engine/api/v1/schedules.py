# ============================================================================
# FILE: availability_engine/api/v1/schedules.py
# Weekly schedules, date overrides and recurring patterns
# ============================================================================
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from availability_engine.config.database import get_db
from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import ValidationError
from availability_engine.schemas.schedule import (
    EffectiveDay,
    EffectiveScheduleResponse,
    OverrideCreate,
    OverrideResponse,
    RecurringPatternCreate,
    RecurringPatternResponse,
    RecurringPatternUpdate,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
    ScheduleCreate,
    ScheduleResponse,
    TimeRange,
)
from availability_engine.services.schedule.schedule_service import ScheduleService

router = APIRouter()
settings = get_settings()


def _schedule_to_response(schedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=str(schedule.id),
        calendar_id=str(schedule.calendar_id),
        name=schedule.name,
        is_default=schedule.is_default,
    )


def _rule_to_response(rule) -> RuleResponse:
    return RuleResponse(
        id=str(rule.id),
        schedule_id=str(rule.schedule_id),
        day_of_week=rule.day_of_week,
        start_time=rule.start_time,
        end_time=rule.end_time,
        is_available=rule.is_available,
    )


def _override_to_response(override) -> OverrideResponse:
    return OverrideResponse(
        id=str(override.id),
        calendar_id=str(override.calendar_id),
        date=override.date,
        is_available=override.is_available,
        start_time=override.start_time,
        end_time=override.end_time,
        reason=override.reason,
    )


def _pattern_to_response(pattern) -> RecurringPatternResponse:
    return RecurringPatternResponse(
        id=str(pattern.id),
        calendar_id=str(pattern.calendar_id),
        pattern_type=pattern.pattern_type,
        pattern_name=pattern.pattern_name,
        start_date=pattern.start_date,
        end_date=pattern.end_date,
        schedule=ScheduleService.parse_pattern_schedule(pattern),
        is_active=pattern.is_active,
    )


# ========== SCHEDULES & RULES ==========

@router.post("/calendars/{calendar_id}/schedules", response_model=ScheduleResponse, status_code=201)
def create_schedule(calendar_id: str, request: ScheduleCreate, db: Session = Depends(get_db)):
    return _schedule_to_response(
        ScheduleService.create_schedule(db, calendar_id, request.name, request.is_default)
    )


@router.get("/calendars/{calendar_id}/schedules", response_model=List[ScheduleResponse])
def list_schedules(calendar_id: str, db: Session = Depends(get_db)):
    return [_schedule_to_response(s) for s in ScheduleService.list_schedules(db, calendar_id)]


@router.post("/schedules/{schedule_id}/default", response_model=ScheduleResponse)
def set_default_schedule(schedule_id: str, db: Session = Depends(get_db)):
    return _schedule_to_response(ScheduleService.set_default_schedule(db, schedule_id))


@router.delete("/schedules/{schedule_id}", status_code=204)
def delete_schedule(schedule_id: str, db: Session = Depends(get_db)):
    ScheduleService.delete_schedule(db, schedule_id)


@router.get("/schedules/{schedule_id}/rules", response_model=List[RuleResponse])
def list_rules(schedule_id: str, db: Session = Depends(get_db)):
    schedule = ScheduleService.get_schedule(db, schedule_id)
    return [_rule_to_response(r) for r in ScheduleService.list_rules(db, schedule.id)]


@router.post("/schedules/{schedule_id}/rules", response_model=RuleResponse, status_code=201)
def add_rule(schedule_id: str, request: RuleCreate, db: Session = Depends(get_db)):
    rule = ScheduleService.add_rule(
        db, schedule_id, request.day_of_week, request.start_time, request.end_time, request.is_available
    )
    return _rule_to_response(rule)


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
def update_rule(rule_id: str, request: RuleUpdate, db: Session = Depends(get_db)):
    return _rule_to_response(ScheduleService.update_rule(db, rule_id, request.model_dump(exclude_unset=True)))


@router.delete("/rules/{rule_id}", status_code=204)
def delete_rule(rule_id: str, db: Session = Depends(get_db)):
    ScheduleService.delete_rule(db, rule_id)


# ========== OVERRIDES ==========

@router.put("/calendars/{calendar_id}/overrides", response_model=OverrideResponse)
def upsert_override(
        calendar_id: str,
        request: OverrideCreate,
        force: bool = Query(False, description="Staff override of the booking window check"),
        db: Session = Depends(get_db)
):
    override = ScheduleService.upsert_override(
        db,
        calendar_id,
        request.date,
        request.is_available,
        start_time=request.start_time,
        end_time=request.end_time,
        reason=request.reason,
        force=force,
    )
    return _override_to_response(override)


@router.get("/calendars/{calendar_id}/overrides", response_model=List[OverrideResponse])
def list_overrides(
        calendar_id: str,
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None, description="Exclusive"),
        db: Session = Depends(get_db)
):
    return [
        _override_to_response(o)
        for o in ScheduleService.list_overrides(db, calendar_id, start_date, end_date)
    ]


@router.delete("/overrides/{override_id}", status_code=204)
def delete_override(override_id: str, db: Session = Depends(get_db)):
    ScheduleService.delete_override(db, override_id)


# ========== RECURRING PATTERNS ==========

@router.post("/calendars/{calendar_id}/patterns", response_model=RecurringPatternResponse, status_code=201)
def create_pattern(calendar_id: str, request: RecurringPatternCreate, db: Session = Depends(get_db)):
    pattern = ScheduleService.create_pattern(
        db,
        calendar_id,
        request.pattern_name,
        request.start_date,
        request.schedule,
        end_date=request.end_date,
        is_active=request.is_active,
    )
    return _pattern_to_response(pattern)


@router.get("/calendars/{calendar_id}/patterns", response_model=List[RecurringPatternResponse])
def list_patterns(calendar_id: str, db: Session = Depends(get_db)):
    return [_pattern_to_response(p) for p in ScheduleService.list_patterns(db, calendar_id)]


@router.patch("/patterns/{pattern_id}", response_model=RecurringPatternResponse)
def update_pattern(pattern_id: str, request: RecurringPatternUpdate, db: Session = Depends(get_db)):
    changes = {key: getattr(request, key) for key in request.model_fields_set}
    return _pattern_to_response(ScheduleService.update_pattern(db, pattern_id, changes))


@router.delete("/patterns/{pattern_id}", status_code=204)
def delete_pattern(pattern_id: str, db: Session = Depends(get_db)):
    ScheduleService.delete_pattern(db, pattern_id)


# ========== EFFECTIVE SCHEDULE ==========

@router.get("/calendars/{calendar_id}/effective-schedule", response_model=EffectiveScheduleResponse)
def get_effective_schedule(
        calendar_id: str,
        start_date: date = Query(..., description="First day (calendar timezone)"),
        days: int = Query(7, ge=1),
        db: Session = Depends(get_db)
):
    """Opening hours per day after applying overrides, patterns and weekly rules"""
    if days > settings.MAX_AVAILABILITY_DAYS:
        raise ValidationError(f"days must be at most {settings.MAX_AVAILABILITY_DAYS}", code="invalid_days")

    window = ScheduleService.get_effective_schedule_window(
        db, calendar_id, start_date, start_date + timedelta(days=days)
    )
    effective_days = []
    for day in window.days():
        source, intervals = window.resolve(day)
        effective_days.append(EffectiveDay(
            date=day,
            source=source,
            intervals=[TimeRange(start=start, end=end) for start, end in intervals],
        ))
    return EffectiveScheduleResponse(calendar_id=str(window.calendar_id), timezone=window.timezone, days=effective_days)
