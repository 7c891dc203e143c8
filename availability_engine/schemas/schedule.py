# availability_engine/schemas/schedule.py

from datetime import date, time
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


class TimeRange(BaseModel):
    """Wall-clock opening interval inside one day, [start, end)"""
    start: time = Field(..., description="Opening time, e.g. 09:00")
    end: time = Field(..., description="Closing time, e.g. 17:00")

    @model_validator(mode="after")
    def end_after_start(self) -> "TimeRange":
        if self.end <= self.start:
            raise ValueError("end must be after start (intervals cannot cross midnight)")
        return self


DayOfWeek = Annotated[int, Field(ge=0, le=6, description="0=Sunday ... 6=Saturday")]


# ============================================================================
# Recurring patterns: one explicit field set per pattern type
# ============================================================================

class _PatternSchedule(BaseModel):
    time_slots: List[TimeRange] = Field(..., min_length=1)


class WeeklySchedule(_PatternSchedule):
    pattern_type: Literal["weekly"] = "weekly"
    days: List[DayOfWeek] = Field(..., min_length=1)


class BiweeklySchedule(_PatternSchedule):
    """Alternating weeks, counted from the week containing the pattern start date"""
    pattern_type: Literal["biweekly"] = "biweekly"
    week1_days: List[DayOfWeek] = Field(default_factory=list)
    week2_days: List[DayOfWeek] = Field(default_factory=list)

    @model_validator(mode="after")
    def has_days(self) -> "BiweeklySchedule":
        if not self.week1_days and not self.week2_days:
            raise ValueError("biweekly pattern needs at least one day in week 1 or week 2")
        return self


class MonthlySchedule(_PatternSchedule):
    """First or last occurrence of the listed weekdays in every month"""
    pattern_type: Literal["monthly"] = "monthly"
    days: List[DayOfWeek] = Field(..., min_length=1)
    occurrence: Literal["first", "last"] = "first"


class SeasonalSchedule(_PatternSchedule):
    """Listed weekdays between start_month and end_month (may wrap past December)"""
    pattern_type: Literal["seasonal"] = "seasonal"
    days: List[DayOfWeek] = Field(..., min_length=1)
    start_month: int = Field(..., ge=1, le=12)
    end_month: int = Field(..., ge=1, le=12)


RecurrenceSchedule = Annotated[
    Union[WeeklySchedule, BiweeklySchedule, MonthlySchedule, SeasonalSchedule],
    Field(discriminator="pattern_type"),
]

recurrence_adapter = TypeAdapter(RecurrenceSchedule)


# ============================================================================
# Request/Response Models
# ============================================================================

class ScheduleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    is_default: bool = False


class ScheduleResponse(BaseModel):
    id: str
    calendar_id: str
    name: str
    is_default: bool


class RuleCreate(BaseModel):
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    is_available: bool = True


class RuleUpdate(BaseModel):
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_available: Optional[bool] = None


class RuleResponse(BaseModel):
    id: str
    schedule_id: str
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool


class OverrideCreate(BaseModel):
    date: date
    is_available: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = Field(None, max_length=200)


class OverrideResponse(BaseModel):
    id: str
    calendar_id: str
    date: date
    is_available: bool
    start_time: Optional[time]
    end_time: Optional[time]
    reason: Optional[str]


class RecurringPatternCreate(BaseModel):
    pattern_name: str = Field(..., min_length=1, max_length=200)
    start_date: date
    end_date: Optional[date] = None
    schedule: RecurrenceSchedule
    is_active: bool = True

    @field_validator("end_date")
    @classmethod
    def end_not_before_start(cls, v: Optional[date], info) -> Optional[date]:
        start_date = info.data.get("start_date")
        if v is not None and start_date and v < start_date:
            raise ValueError("end_date must not be before start_date")
        return v


class RecurringPatternUpdate(BaseModel):
    pattern_name: Optional[str] = Field(None, min_length=1, max_length=200)
    end_date: Optional[date] = None
    schedule: Optional[RecurrenceSchedule] = None
    is_active: Optional[bool] = None


class RecurringPatternResponse(BaseModel):
    id: str
    calendar_id: str
    pattern_type: str
    pattern_name: str
    start_date: date
    end_date: Optional[date]
    schedule: RecurrenceSchedule
    is_active: bool


class EffectiveDay(BaseModel):
    date: date
    source: Literal["override", "pattern", "rule", "closed"]
    intervals: List[TimeRange]


class EffectiveScheduleResponse(BaseModel):
    calendar_id: str
    timezone: str
    days: List[EffectiveDay]
