# ============================================================================
# availability_engine/services/schedule/schedule_service.py
# Schedule store: weekly rules, date overrides and recurring patterns.
# No slot computation happens here.
# ============================================================================
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from availability_engine.core.exceptions import NotFoundError, ValidationError
from availability_engine.models.availability import (
    AvailabilityOverride,
    AvailabilityRule,
    AvailabilitySchedule,
)
from availability_engine.models.recurring_pattern import RecurringPattern
from availability_engine.schemas.schedule import recurrence_adapter
from availability_engine.services.calendar.calendar_service import CalendarService, _parse_uuid
from availability_engine.services.schedule.recurrence import Interval, pattern_intervals
from availability_engine.utils.time_utils import get_timezone, local_date, sunday_based_weekday, utcnow

logger = logging.getLogger(__name__)


def merge_intervals(intervals: List[Interval]) -> List[Interval]:
    """Sort and merge overlapping or touching wall-clock intervals"""
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def _validate_time_range(start: Optional[time], end: Optional[time], label: str) -> None:
    if start is None or end is None:
        raise ValidationError(
            f"{label} needs both start_time and end_time",
            code="invalid_time_range",
        )
    if start >= end:
        raise ValidationError(
            f"{label} start_time must be before end_time (intervals cannot cross midnight)",
            code="invalid_time_range",
            details={"start_time": start.isoformat(), "end_time": end.isoformat()},
        )


@dataclass
class EffectiveSchedule:
    """
    Everything needed to resolve opening hours for a date range.

    Resolution order for a single date: override > recurring pattern >
    weekly rule > closed.
    """
    calendar_id: uuid.UUID
    timezone: str
    start_date: date
    end_date: date  # exclusive
    rules_by_day: Dict[int, List[Interval]] = field(default_factory=dict)
    overrides: Dict[date, List[Interval]] = field(default_factory=dict)
    patterns: List[Tuple[date, Optional[date], object]] = field(default_factory=list)

    def resolve(self, day: date) -> Tuple[str, List[Interval]]:
        """Return (source, merged intervals) for ``day``"""
        if day in self.overrides:
            return "override", self.overrides[day]

        pattern_hours: List[Interval] = []
        matched = False
        for start, end, schedule in self.patterns:
            if day < start or (end is not None and day > end):
                continue
            intervals = pattern_intervals(schedule, start, day)
            if intervals is not None:
                matched = True
                pattern_hours.extend(intervals)
        if matched:
            return "pattern", merge_intervals(pattern_hours)

        rules = self.rules_by_day.get(sunday_based_weekday(day))
        if rules:
            return "rule", merge_intervals(rules)

        return "closed", []

    def intervals_for(self, day: date) -> List[Interval]:
        return self.resolve(day)[1]

    def days(self):
        current = self.start_date
        while current < self.end_date:
            yield current
            current += timedelta(days=1)


class ScheduleService:
    """CRUD for availability schedules, rules, overrides and recurring patterns"""

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    @staticmethod
    def create_schedule(db: Session, calendar_id, name: str, is_default: bool = False) -> AvailabilitySchedule:
        calendar = CalendarService.get_calendar(db, calendar_id)
        has_default = db.query(AvailabilitySchedule).filter(
            AvailabilitySchedule.calendar_id == calendar.id,
            AvailabilitySchedule.is_default.is_(True)
        ).first() is not None

        schedule = AvailabilitySchedule(
            id=uuid.uuid4(),
            calendar_id=calendar.id,
            name=name,
            # The first schedule of a calendar becomes its default
            is_default=False,
        )
        db.add(schedule)
        db.flush()

        if is_default or not has_default:
            ScheduleService._make_default(db, schedule)

        db.commit()
        logger.info(f"Created schedule {schedule.id} for calendar {calendar.id} (default={schedule.is_default})")
        return schedule

    @staticmethod
    def get_schedule(db: Session, schedule_id) -> AvailabilitySchedule:
        schedule = db.get(AvailabilitySchedule, _parse_uuid(schedule_id, "schedule_id"))
        if not schedule:
            raise NotFoundError(f"Schedule {schedule_id} not found", code="schedule_not_found")
        return schedule

    @staticmethod
    def list_schedules(db: Session, calendar_id) -> List[AvailabilitySchedule]:
        calendar = CalendarService.get_calendar(db, calendar_id)
        return db.query(AvailabilitySchedule).filter(
            AvailabilitySchedule.calendar_id == calendar.id
        ).order_by(AvailabilitySchedule.created_at.asc()).all()

    @staticmethod
    def set_default_schedule(db: Session, schedule_id) -> AvailabilitySchedule:
        schedule = ScheduleService.get_schedule(db, schedule_id)
        ScheduleService._make_default(db, schedule)
        db.commit()
        return schedule

    @staticmethod
    def _make_default(db: Session, schedule: AvailabilitySchedule) -> None:
        # At most one default schedule per calendar
        db.query(AvailabilitySchedule).filter(
            AvailabilitySchedule.calendar_id == schedule.calendar_id,
            AvailabilitySchedule.id != schedule.id,
            AvailabilitySchedule.is_default.is_(True)
        ).update({AvailabilitySchedule.is_default: False}, synchronize_session="fetch")
        schedule.is_default = True

    @staticmethod
    def delete_schedule(db: Session, schedule_id) -> None:
        schedule = ScheduleService.get_schedule(db, schedule_id)
        db.delete(schedule)
        db.commit()

    @staticmethod
    def get_default_schedule(db: Session, calendar_id: uuid.UUID) -> Optional[AvailabilitySchedule]:
        return db.query(AvailabilitySchedule).filter(
            AvailabilitySchedule.calendar_id == calendar_id,
            AvailabilitySchedule.is_default.is_(True)
        ).first()

    # ------------------------------------------------------------------
    # Weekly rules
    # ------------------------------------------------------------------

    @staticmethod
    def add_rule(
            db: Session,
            schedule_id,
            day_of_week: int,
            start_time: time,
            end_time: time,
            is_available: bool = True
    ) -> AvailabilityRule:
        schedule = ScheduleService.get_schedule(db, schedule_id)
        if not 0 <= day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)", code="invalid_day_of_week")
        if is_available:
            _validate_time_range(start_time, end_time, "Rule")

        rule = AvailabilityRule(
            id=uuid.uuid4(),
            schedule_id=schedule.id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_available=is_available,
        )
        db.add(rule)
        db.commit()
        return rule

    @staticmethod
    def get_rule(db: Session, rule_id) -> AvailabilityRule:
        rule = db.get(AvailabilityRule, _parse_uuid(rule_id, "rule_id"))
        if not rule:
            raise NotFoundError(f"Availability rule {rule_id} not found", code="rule_not_found")
        return rule

    @staticmethod
    def list_rules(db: Session, schedule_id) -> List[AvailabilityRule]:
        schedule_uuid = _parse_uuid(schedule_id, "schedule_id")
        return db.query(AvailabilityRule).filter(
            AvailabilityRule.schedule_id == schedule_uuid
        ).order_by(AvailabilityRule.day_of_week.asc(), AvailabilityRule.start_time.asc()).all()

    @staticmethod
    def update_rule(db: Session, rule_id, changes: Dict) -> AvailabilityRule:
        rule = ScheduleService.get_rule(db, rule_id)
        start_time = changes.get("start_time", rule.start_time)
        end_time = changes.get("end_time", rule.end_time)
        is_available = changes.get("is_available", rule.is_available)
        if is_available:
            _validate_time_range(start_time, end_time, "Rule")

        rule.start_time = start_time
        rule.end_time = end_time
        rule.is_available = is_available
        db.commit()
        return rule

    @staticmethod
    def delete_rule(db: Session, rule_id) -> None:
        rule = ScheduleService.get_rule(db, rule_id)
        db.delete(rule)
        db.commit()

    # ------------------------------------------------------------------
    # Date overrides
    # ------------------------------------------------------------------

    @staticmethod
    def upsert_override(
            db: Session,
            calendar_id,
            override_date: date,
            is_available: bool,
            start_time: Optional[time] = None,
            end_time: Optional[time] = None,
            reason: Optional[str] = None,
            force: bool = False,
            now: Optional[datetime] = None
    ) -> AvailabilityOverride:
        """
        Create or replace the override of one date.

        Dates in the past or beyond the booking window are rejected unless
        ``force`` is set (admin override).
        """
        calendar = CalendarService.get_calendar(db, calendar_id)
        policy = CalendarService.get_policy(calendar)

        if is_available:
            _validate_time_range(start_time, end_time, "Override")
        else:
            start_time = end_time = None

        if not force:
            tz = get_timezone(calendar.timezone)
            today = local_date(tz, now or utcnow())
            last_day = today + timedelta(days=policy.booking_window_days)
            if override_date < today or override_date > last_day:
                raise ValidationError(
                    f"Override date {override_date.isoformat()} is outside the booking window "
                    f"({today.isoformat()} to {last_day.isoformat()})",
                    code="override_outside_booking_window",
                )

        override = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.calendar_id == calendar.id,
            AvailabilityOverride.date == override_date
        ).first()

        if override is None:
            override = AvailabilityOverride(id=uuid.uuid4(), calendar_id=calendar.id, date=override_date)
            db.add(override)

        override.is_available = is_available
        override.start_time = start_time
        override.end_time = end_time
        override.reason = reason
        db.commit()

        logger.info(f"Override for calendar {calendar.id} on {override_date}: available={is_available}")
        return override

    @staticmethod
    def list_overrides(
            db: Session,
            calendar_id,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None
    ) -> List[AvailabilityOverride]:
        calendar = CalendarService.get_calendar(db, calendar_id)
        query = db.query(AvailabilityOverride).filter(AvailabilityOverride.calendar_id == calendar.id)
        if start_date:
            query = query.filter(AvailabilityOverride.date >= start_date)
        if end_date:
            query = query.filter(AvailabilityOverride.date < end_date)
        return query.order_by(AvailabilityOverride.date.asc()).all()

    @staticmethod
    def delete_override(db: Session, override_id) -> None:
        override = db.get(AvailabilityOverride, _parse_uuid(override_id, "override_id"))
        if not override:
            raise NotFoundError(f"Override {override_id} not found", code="override_not_found")
        db.delete(override)
        db.commit()

    # ------------------------------------------------------------------
    # Recurring patterns
    # ------------------------------------------------------------------

    @staticmethod
    def create_pattern(
            db: Session,
            calendar_id,
            pattern_name: str,
            start_date: date,
            schedule,
            end_date: Optional[date] = None,
            is_active: bool = True
    ) -> RecurringPattern:
        calendar = CalendarService.get_calendar(db, calendar_id)
        if end_date is not None and end_date < start_date:
            raise ValidationError("end_date must not be before start_date", code="invalid_date_range")

        pattern = RecurringPattern(
            id=uuid.uuid4(),
            calendar_id=calendar.id,
            pattern_type=schedule.pattern_type,
            pattern_name=pattern_name,
            start_date=start_date,
            end_date=end_date,
            schedule_data=schedule.model_dump(mode="json"),
            is_active=is_active,
        )
        db.add(pattern)
        db.commit()
        logger.info(f"Created {pattern.pattern_type} pattern {pattern.id} for calendar {calendar.id}")
        return pattern

    @staticmethod
    def get_pattern(db: Session, pattern_id) -> RecurringPattern:
        pattern = db.get(RecurringPattern, _parse_uuid(pattern_id, "pattern_id"))
        if not pattern:
            raise NotFoundError(f"Recurring pattern {pattern_id} not found", code="pattern_not_found")
        return pattern

    @staticmethod
    def update_pattern(db: Session, pattern_id, changes: Dict) -> RecurringPattern:
        pattern = ScheduleService.get_pattern(db, pattern_id)
        schedule = changes.pop("schedule", None)

        start_date = changes.get("start_date", pattern.start_date)
        end_date = changes.get("end_date", pattern.end_date)
        if start_date is None:
            raise ValidationError("start_date cannot be null", code="invalid_date_range")
        if end_date is not None and end_date < start_date:
            raise ValidationError("end_date must not be before start_date", code="invalid_date_range")

        if schedule is not None:
            pattern.pattern_type = schedule.pattern_type
            pattern.schedule_data = schedule.model_dump(mode="json")
        for key, value in changes.items():
            setattr(pattern, key, value)
        db.commit()
        return pattern

    @staticmethod
    def delete_pattern(db: Session, pattern_id) -> None:
        pattern = ScheduleService.get_pattern(db, pattern_id)
        db.delete(pattern)
        db.commit()

    @staticmethod
    def list_patterns(db: Session, calendar_id) -> List[RecurringPattern]:
        calendar = CalendarService.get_calendar(db, calendar_id)
        return db.query(RecurringPattern).filter(
            RecurringPattern.calendar_id == calendar.id
        ).order_by(RecurringPattern.created_at.desc()).all()

    @staticmethod
    def parse_pattern_schedule(pattern: RecurringPattern):
        data = dict(pattern.schedule_data or {})
        data["pattern_type"] = pattern.pattern_type
        return recurrence_adapter.validate_python(data)

    # ------------------------------------------------------------------
    # Effective window
    # ------------------------------------------------------------------

    @staticmethod
    def get_effective_schedule_window(
            db: Session,
            calendar_id,
            start_date: date,
            end_date: date
    ) -> EffectiveSchedule:
        """
        Rules of the default schedule plus the overrides and active
        recurring patterns intersecting [start_date, end_date).
        """
        if end_date <= start_date:
            raise ValidationError("end_date must be after start_date", code="invalid_date_range")

        calendar = CalendarService.get_calendar(db, calendar_id)
        window = EffectiveSchedule(
            calendar_id=calendar.id,
            timezone=calendar.timezone,
            start_date=start_date,
            end_date=end_date,
        )

        schedule = ScheduleService.get_default_schedule(db, calendar.id)
        if schedule is not None:
            for rule in ScheduleService.list_rules(db, schedule.id):
                if not rule.is_available:
                    continue
                window.rules_by_day.setdefault(rule.day_of_week, []).append((rule.start_time, rule.end_time))

        overrides = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.calendar_id == calendar.id,
            AvailabilityOverride.date >= start_date,
            AvailabilityOverride.date < end_date
        ).all()
        for override in overrides:
            if override.is_available and override.start_time and override.end_time:
                window.overrides[override.date] = [(override.start_time, override.end_time)]
            else:
                window.overrides[override.date] = []

        patterns = db.query(RecurringPattern).filter(
            RecurringPattern.calendar_id == calendar.id,
            RecurringPattern.is_active.is_(True),
            RecurringPattern.start_date < end_date,
            or_(RecurringPattern.end_date.is_(None), RecurringPattern.end_date >= start_date)
        ).order_by(RecurringPattern.created_at.asc()).all()
        for pattern in patterns:
            window.patterns.append(
                (pattern.start_date, pattern.end_date, ScheduleService.parse_pattern_schedule(pattern))
            )

        return window
