# availability_engine/services/schedule/recurrence.py
"""Date matching for recurring availability patterns"""
from datetime import date, time, timedelta
from typing import List, Optional, Tuple

from availability_engine.schemas.schedule import (
    BiweeklySchedule,
    MonthlySchedule,
    SeasonalSchedule,
    WeeklySchedule,
)
from availability_engine.utils.time_utils import sunday_based_weekday

Interval = Tuple[time, time]


def _week_start(day: date) -> date:
    # Weeks start on Sunday, matching day_of_week 0
    return day - timedelta(days=sunday_based_weekday(day))


def _is_first_occurrence(day: date) -> bool:
    return day.day <= 7


def _is_last_occurrence(day: date) -> bool:
    return (day + timedelta(days=7)).month != day.month


def _month_in_season(month: int, start_month: int, end_month: int) -> bool:
    if start_month <= end_month:
        return start_month <= month <= end_month
    # Season wraps past December, e.g. November..February
    return month >= start_month or month <= end_month


def pattern_applies(schedule, pattern_start: date, day: date) -> bool:
    """True when the pattern produces opening hours on ``day``"""
    weekday = sunday_based_weekday(day)

    if isinstance(schedule, WeeklySchedule):
        return weekday in schedule.days

    if isinstance(schedule, BiweeklySchedule):
        weeks = (_week_start(day) - _week_start(pattern_start)).days // 7
        days = schedule.week1_days if weeks % 2 == 0 else schedule.week2_days
        return weekday in days

    if isinstance(schedule, MonthlySchedule):
        if weekday not in schedule.days:
            return False
        if schedule.occurrence == "first":
            return _is_first_occurrence(day)
        return _is_last_occurrence(day)

    if isinstance(schedule, SeasonalSchedule):
        return weekday in schedule.days and _month_in_season(
            day.month, schedule.start_month, schedule.end_month
        )

    raise TypeError(f"Unsupported recurrence schedule: {type(schedule).__name__}")


def pattern_intervals(schedule, pattern_start: date, day: date) -> Optional[List[Interval]]:
    """
    Opening intervals contributed by a pattern on ``day``.

    Returns None when the pattern does not cover the day at all, so callers
    can fall back to the weekly rules.
    """
    if not pattern_applies(schedule, pattern_start, day):
        return None
    return [(slot.start, slot.end) for slot in schedule.time_slots]
