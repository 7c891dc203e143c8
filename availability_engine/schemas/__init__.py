from .schedule import (
    TimeRange,
    WeeklySchedule,
    BiweeklySchedule,
    MonthlySchedule,
    SeasonalSchedule,
    RecurrenceSchedule,
    recurrence_adapter,
)
from .availability import TimeSlot, AvailabilityResponse
from .booking import CustomerInfo, BookingCreate, BookingResponse

__all__ = [
    "TimeRange",
    "WeeklySchedule",
    "BiweeklySchedule",
    "MonthlySchedule",
    "SeasonalSchedule",
    "RecurrenceSchedule",
    "recurrence_adapter",
    "TimeSlot",
    "AvailabilityResponse",
    "CustomerInfo",
    "BookingCreate",
    "BookingResponse",
]
