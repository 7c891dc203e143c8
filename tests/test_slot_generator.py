"""
Tests for slot generation, both the pure generator and the service that
feeds it from the database
"""
import uuid
from datetime import date, time, timedelta

import pytest

from availability_engine.core.exceptions import ValidationError
from availability_engine.services.availability.availability_service import AvailabilityService
from availability_engine.services.availability.conflict_checker import BookedInterval
from availability_engine.services.availability.slot_generator import generate_slots
from availability_engine.services.calendar.calendar_service import CalendarPolicy, ServiceTypeService
from availability_engine.services.schedule.schedule_service import EffectiveSchedule, ScheduleService
from conftest import NOW, at, set_policy

MONDAY = date(2026, 3, 2)
NINE_TO_FIVE = [(time(9, 0), time(17, 0))]


def weekday_window(timezone="UTC", start=MONDAY, days=7):
    return EffectiveSchedule(
        calendar_id=uuid.uuid4(),
        timezone=timezone,
        start_date=start,
        end_date=start + timedelta(days=days),
        rules_by_day={day: list(NINE_TO_FIVE) for day in range(1, 6)},
    )


def starts(slots):
    return [slot.start_time for slot in slots]


class TestGenerateSlots:
    """The generator is pure, every input is passed in"""

    def test_monday_hourly_service_on_half_hour_grid(self):
        slots = list(generate_slots(
            weekday_window(), CalendarPolicy(slot_duration=30), 60, [], NOW, MONDAY, 1
        ))

        assert len(slots) == 15
        assert (slots[0].start_time, slots[0].end_time) == (at(2, 9), at(2, 10))
        assert (slots[-1].start_time, slots[-1].end_time) == (at(2, 16), at(2, 17))
        assert starts(slots) == sorted(starts(slots))

    def test_same_inputs_same_output(self):
        args = (weekday_window(), CalendarPolicy(slot_duration=30), 60, [], NOW, MONDAY, 5)
        assert list(generate_slots(*args)) == list(generate_slots(*args))

    def test_is_lazy(self):
        slots = generate_slots(weekday_window(), CalendarPolicy(slot_duration=30), 60, [], NOW, MONDAY, 7)
        assert next(slots).start_time == at(2, 9)

    def test_service_longer_than_opening_hours(self):
        slots = list(generate_slots(weekday_window(), CalendarPolicy(slot_duration=30), 9 * 60, [], NOW, MONDAY, 7))
        assert slots == []

    def test_booked_slot_is_removed(self):
        booked = [BookedInterval(at(2, 10), at(2, 11))]
        slots = list(generate_slots(weekday_window(), CalendarPolicy(slot_duration=30), 60, booked, NOW, MONDAY, 1))

        # Anything overlapping [10:00, 11:00) goes, back-to-back stays
        assert at(2, 9) in starts(slots)
        assert at(2, 9, 30) not in starts(slots)
        assert at(2, 10, 30) not in starts(slots)
        assert at(2, 11) in starts(slots)
        assert len(slots) == 12

    def test_buffer_widens_bookings_and_footprint(self):
        policy = CalendarPolicy(slot_duration=30, buffer_time=15)
        booked = [BookedInterval(at(2, 11), at(2, 12))]
        slots = list(generate_slots(weekday_window(), policy, 60, booked, NOW, MONDAY, 1))

        assert starts(slots) == [
            at(2, 9), at(2, 9, 30),
            at(2, 12, 30), at(2, 13), at(2, 13, 30), at(2, 14), at(2, 14, 30), at(2, 15), at(2, 15, 30),
        ]

    def test_minimum_notice(self):
        policy = CalendarPolicy(slot_duration=30, minimum_notice_hours=2)
        slots = list(generate_slots(weekday_window(), policy, 60, [], at(2, 8), MONDAY, 1))

        assert slots[0].start_time == at(2, 10)
        assert len(slots) == 13

    def test_booking_window_cuts_later_days(self):
        policy = CalendarPolicy(slot_duration=30, booking_window_days=1)
        slots = list(generate_slots(weekday_window(), policy, 60, [], NOW, date(2026, 3, 1), 7))

        assert {slot.start_time.date() for slot in slots} == {MONDAY}

    def test_daily_cap_closes_the_day(self):
        policy = CalendarPolicy(slot_duration=30, max_bookings_per_day=1)
        booked = [BookedInterval(at(2, 9), at(2, 10))]
        slots = list(generate_slots(weekday_window(), policy, 60, booked, NOW, MONDAY, 2))

        assert {slot.start_time.date() for slot in slots} == {date(2026, 3, 3)}
        assert len(slots) == 15

    def test_local_grid_in_calendar_timezone(self):
        slots = list(generate_slots(
            weekday_window("America/New_York"), CalendarPolicy(slot_duration=30), 60, [], NOW, MONDAY, 1
        ))
        # 09:00 EST
        assert slots[0].start_time == at(2, 14)

    def test_local_grid_survives_dst_change(self):
        # US clocks move forward on Sunday 8 March 2026
        window = weekday_window("America/New_York", start=date(2026, 3, 9), days=1)
        slots = list(generate_slots(window, CalendarPolicy(slot_duration=30), 60, [], NOW, date(2026, 3, 9), 1))

        # 09:00 EDT
        assert slots[0].start_time == at(9, 13)
        assert len(slots) == 15

    def test_prep_and_cleanup_count_towards_length(self):
        slots = list(generate_slots(weekday_window(), CalendarPolicy(slot_duration=30), 90, [], NOW, MONDAY, 1))
        assert slots[0].end_time - slots[0].start_time == timedelta(minutes=90)
        assert slots[-1].end_time == at(2, 17)


class TestAvailabilityService:

    def test_monday_slots_from_database(self, db, calendar, weekday_schedule, service_type):
        slots = AvailabilityService.get_available_slots(
            db, calendar.id, service_type.id, start_date=MONDAY, days=1, now=NOW
        )
        assert len(slots) == 15
        assert slots[0].start_time == at(2, 9)

    def test_closed_override_empties_the_day(self, db, calendar, weekday_schedule, service_type):
        ScheduleService.upsert_override(db, calendar.id, date(2026, 3, 3), False, reason="Training", now=NOW)
        slots = AvailabilityService.get_available_slots(
            db, calendar.id, service_type.id, start_date=date(2026, 3, 3), days=1, now=NOW
        )
        assert slots == []

    def test_limit(self, db, calendar, weekday_schedule, service_type):
        slots = AvailabilityService.get_available_slots(
            db, calendar.id, service_type.id, start_date=MONDAY, days=5, now=NOW, limit=3
        )
        assert starts(slots) == [at(2, 9), at(2, 9, 30), at(2, 10)]

    def test_preparation_and_cleanup_from_service_type(self, db, calendar, weekday_schedule):
        colour = ServiceTypeService.create_service_type(
            db, calendar.id, name="Colour", duration=60, preparation_time=15, cleanup_time=15
        )
        slots = AvailabilityService.get_available_slots(db, calendar.id, colour.id, start_date=MONDAY, days=1, now=NOW)

        assert slots[0].end_time == at(2, 10, 30)
        assert slots[-1].start_time == at(2, 15, 30)

    def test_inactive_calendar_has_no_slots(self, db, calendar, weekday_schedule, service_type):
        calendar.is_active = False
        db.commit()
        assert AvailabilityService.get_available_slots(
            db, calendar.id, service_type.id, start_date=MONDAY, days=1, now=NOW
        ) == []

    def test_days_out_of_range(self, db, calendar, service_type):
        with pytest.raises(ValidationError) as exc_info:
            AvailabilityService.get_available_slots(db, calendar.id, service_type.id, days=0, now=NOW)
        assert exc_info.value.code == "invalid_days"

    def test_next_available_skips_closed_sunday(self, db, calendar, weekday_schedule, service_type):
        slot = AvailabilityService.next_available(db, calendar.id, service_type.id, now=NOW)
        assert slot.start_time == at(2, 9)

    def test_next_available_none_without_hours(self, db, calendar, service_type):
        set_policy(db, calendar, booking_window_days=3)
        assert AvailabilityService.next_available(db, calendar.id, service_type.id, now=NOW) is None

    def test_summary(self, db, calendar, weekday_schedule, service_type):
        ScheduleService.upsert_override(db, calendar.id, date(2026, 3, 3), False, now=NOW)
        summary = AvailabilityService.get_availability_summary(
            db, calendar.id, service_type.id, start_date=date(2026, 3, 1), days=3, now=NOW
        )

        assert [day["source"] for day in summary] == ["closed", "rule", "override"]
        assert summary[1]["available_slots"] == 15
        assert summary[1]["open_intervals"] == [{"start": "09:00:00", "end": "17:00:00"}]
        assert summary[2]["is_open"] is False
