"""
Tests for the schedule store: weekly rules, overrides, patterns and the
effective schedule they resolve to
"""
from datetime import date, time

import pytest

from availability_engine.core.exceptions import NotFoundError, ValidationError
from availability_engine.schemas.schedule import WeeklySchedule
from availability_engine.services.schedule.schedule_service import ScheduleService, merge_intervals
from conftest import NOW

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
SATURDAY = date(2026, 3, 7)


class TestMergeIntervals:

    def test_overlapping_and_touching_are_merged(self):
        merged = merge_intervals([
            (time(13, 0), time(15, 0)),
            (time(9, 0), time(11, 0)),
            (time(10, 30), time(12, 0)),
            (time(12, 0), time(12, 30)),
        ])
        assert merged == [(time(9, 0), time(12, 30)), (time(13, 0), time(15, 0))]

    def test_contained_interval_disappears(self):
        assert merge_intervals([(time(9, 0), time(17, 0)), (time(10, 0), time(11, 0))]) == [
            (time(9, 0), time(17, 0))
        ]


class TestWeeklyRules:

    def test_rule_must_not_cross_midnight(self, db, calendar):
        schedule = ScheduleService.create_schedule(db, calendar.id, "Nights")
        with pytest.raises(ValidationError) as exc_info:
            ScheduleService.add_rule(db, schedule.id, 5, time(22, 0), time(2, 0))
        assert exc_info.value.code == "invalid_time_range"

    def test_day_of_week_range(self, db, calendar):
        schedule = ScheduleService.create_schedule(db, calendar.id, "Week")
        with pytest.raises(ValidationError) as exc_info:
            ScheduleService.add_rule(db, schedule.id, 7, time(9, 0), time(17, 0))
        assert exc_info.value.code == "invalid_day_of_week"

    def test_rules_listed_by_day_then_start(self, db, weekday_schedule):
        ScheduleService.add_rule(db, weekday_schedule.id, 1, time(7, 0), time(8, 0))
        rules = ScheduleService.list_rules(db, weekday_schedule.id)

        assert [r.day_of_week for r in rules] == [1, 1, 2, 3, 4, 5]
        assert rules[0].start_time == time(7, 0)

    def test_update_rule_validates_combined_range(self, db, weekday_schedule):
        rule = ScheduleService.list_rules(db, weekday_schedule.id)[0]
        with pytest.raises(ValidationError):
            ScheduleService.update_rule(db, rule.id, {"start_time": time(18, 0)})

        updated = ScheduleService.update_rule(db, rule.id, {"end_time": time(12, 0)})
        assert (updated.start_time, updated.end_time) == (time(9, 0), time(12, 0))

    def test_unknown_rule(self, db, calendar):
        with pytest.raises(NotFoundError) as exc_info:
            ScheduleService.delete_rule(db, "00000000-0000-0000-0000-000000000000")
        assert exc_info.value.code == "rule_not_found"


class TestDefaultSchedule:

    def test_first_schedule_becomes_default(self, db, calendar):
        schedule = ScheduleService.create_schedule(db, calendar.id, "Main")
        assert schedule.is_default is True

    def test_switching_default_clears_previous(self, db, calendar, weekday_schedule):
        summer = ScheduleService.create_schedule(db, calendar.id, "Summer", is_default=True)
        ScheduleService.add_rule(db, summer.id, 1, time(8, 0), time(12, 0))

        assert ScheduleService.get_default_schedule(db, calendar.id).id == summer.id
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, TUESDAY)
        assert window.intervals_for(MONDAY) == [(time(8, 0), time(12, 0))]

        ScheduleService.set_default_schedule(db, weekday_schedule.id)
        defaults = [s for s in ScheduleService.list_schedules(db, calendar.id) if s.is_default]
        assert [s.id for s in defaults] == [weekday_schedule.id]

    def test_no_schedule_means_closed(self, db, calendar):
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, TUESDAY)
        assert window.resolve(MONDAY) == ("closed", [])


class TestEffectiveSchedule:

    def test_weekly_rules(self, db, calendar, weekday_schedule):
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, date(2026, 3, 9))

        assert window.resolve(MONDAY) == ("rule", [(time(9, 0), time(17, 0))])
        assert window.resolve(SATURDAY) == ("closed", [])
        assert len(list(window.days())) == 7

    def test_split_shift_rules_merge(self, db, calendar, weekday_schedule):
        ScheduleService.add_rule(db, weekday_schedule.id, 1, time(16, 0), time(19, 0))
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, TUESDAY)
        assert window.intervals_for(MONDAY) == [(time(9, 0), time(19, 0))]

    def test_unavailable_rule_is_ignored(self, db, calendar, weekday_schedule):
        ScheduleService.add_rule(db, weekday_schedule.id, 6, time(9, 0), time(12, 0), is_available=False)
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, SATURDAY, date(2026, 3, 8))
        assert window.intervals_for(SATURDAY) == []

    def test_closed_override_beats_rule(self, db, calendar, weekday_schedule):
        ScheduleService.upsert_override(db, calendar.id, TUESDAY, False, reason="Training", now=NOW)
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, date(2026, 3, 4))

        assert window.resolve(TUESDAY) == ("override", [])
        assert window.resolve(MONDAY)[0] == "rule"

    def test_open_override_on_closed_day(self, db, calendar, weekday_schedule):
        ScheduleService.upsert_override(db, calendar.id, SATURDAY, True, time(10, 0), time(14, 0), now=NOW)
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, SATURDAY, date(2026, 3, 8))
        assert window.resolve(SATURDAY) == ("override", [(time(10, 0), time(14, 0))])

    def test_override_upsert_replaces_by_date(self, db, calendar, weekday_schedule):
        first = ScheduleService.upsert_override(db, calendar.id, TUESDAY, False, now=NOW)
        second = ScheduleService.upsert_override(db, calendar.id, TUESDAY, True, time(12, 0), time(13, 0), now=NOW)

        assert first.id == second.id
        assert len(ScheduleService.list_overrides(db, calendar.id)) == 1

    def test_pattern_beats_rule_and_patterns_union(self, db, calendar, weekday_schedule):
        ScheduleService.create_pattern(
            db, calendar.id, "Late Monday", MONDAY,
            WeeklySchedule(days=[1], time_slots=[{"start": "10:00", "end": "12:00"}]),
        )
        ScheduleService.create_pattern(
            db, calendar.id, "Monday afternoon", MONDAY,
            WeeklySchedule(days=[1], time_slots=[{"start": "11:00", "end": "14:00"}]),
        )
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, date(2026, 3, 4))

        assert window.resolve(MONDAY) == ("pattern", [(time(10, 0), time(14, 0))])
        assert window.resolve(TUESDAY)[0] == "rule"

    def test_override_beats_pattern(self, db, calendar, weekday_schedule):
        ScheduleService.create_pattern(
            db, calendar.id, "Monday mornings", MONDAY,
            WeeklySchedule(days=[1], time_slots=[{"start": "08:00", "end": "10:00"}]),
        )
        ScheduleService.upsert_override(db, calendar.id, MONDAY, False, now=NOW)
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, TUESDAY)
        assert window.resolve(MONDAY) == ("override", [])

    def test_inactive_or_ended_pattern_is_ignored(self, db, calendar, weekday_schedule):
        ScheduleService.create_pattern(
            db, calendar.id, "Paused", MONDAY,
            WeeklySchedule(days=[1], time_slots=[{"start": "10:00", "end": "11:00"}]),
            is_active=False,
        )
        ScheduleService.create_pattern(
            db, calendar.id, "Ended", date(2026, 2, 2),
            WeeklySchedule(days=[1], time_slots=[{"start": "10:00", "end": "11:00"}]),
            end_date=date(2026, 2, 28),
        )
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, TUESDAY)
        assert window.resolve(MONDAY)[0] == "rule"

    def test_pattern_update_changes_hours(self, db, calendar, weekday_schedule):
        pattern = ScheduleService.create_pattern(
            db, calendar.id, "Monday", MONDAY,
            WeeklySchedule(days=[1], time_slots=[{"start": "10:00", "end": "11:00"}]),
        )
        ScheduleService.update_pattern(db, pattern.id, {
            "schedule": WeeklySchedule(days=[1], time_slots=[{"start": "13:00", "end": "15:00"}]),
        })
        window = ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, TUESDAY)
        assert window.intervals_for(MONDAY) == [(time(13, 0), time(15, 0))]

    def test_rejected_pattern_update_leaves_pattern_untouched(self, db, calendar, weekday_schedule):
        pattern = ScheduleService.create_pattern(
            db, calendar.id, "Monday", MONDAY,
            WeeklySchedule(days=[1], time_slots=[{"start": "10:00", "end": "11:00"}]),
        )
        with pytest.raises(ValidationError) as exc_info:
            ScheduleService.update_pattern(db, pattern.id, {
                "pattern_name": "Renamed",
                "end_date": date(2026, 3, 1),
                "schedule": WeeklySchedule(days=[1], time_slots=[{"start": "13:00", "end": "15:00"}]),
            })
        assert exc_info.value.code == "invalid_date_range"

        assert pattern.pattern_name == "Monday"
        assert pattern.end_date is None
        assert pattern.schedule_data["time_slots"] == [{"start": "10:00:00", "end": "11:00:00"}]

    def test_empty_window_rejected(self, db, calendar):
        with pytest.raises(ValidationError):
            ScheduleService.get_effective_schedule_window(db, calendar.id, MONDAY, MONDAY)


class TestOverrideWindow:

    def test_past_date_rejected(self, db, calendar):
        with pytest.raises(ValidationError) as exc_info:
            ScheduleService.upsert_override(db, calendar.id, date(2026, 2, 27), False, now=NOW)
        assert exc_info.value.code == "override_outside_booking_window"

    def test_date_beyond_window_rejected(self, db, calendar):
        with pytest.raises(ValidationError) as exc_info:
            ScheduleService.upsert_override(db, calendar.id, date(2026, 5, 15), False, now=NOW)
        assert exc_info.value.code == "override_outside_booking_window"

    def test_force_allows_any_date(self, db, calendar):
        override = ScheduleService.upsert_override(db, calendar.id, date(2026, 5, 15), False, force=True, now=NOW)
        assert override.date == date(2026, 5, 15)

    def test_open_override_needs_times(self, db, calendar):
        with pytest.raises(ValidationError) as exc_info:
            ScheduleService.upsert_override(db, calendar.id, TUESDAY, True, now=NOW)
        assert exc_info.value.code == "invalid_time_range"

    def test_closed_override_drops_times(self, db, calendar):
        override = ScheduleService.upsert_override(db, calendar.id, TUESDAY, False, time(9, 0), time(10, 0), now=NOW)
        assert override.start_time is None and override.end_time is None
