"""
Tests for overlap detection against stored bookings
"""
import pytest

from availability_engine.core.exceptions import ValidationError
from availability_engine.services.availability.conflict_checker import (
    BookedInterval,
    ConflictChecker,
    conflicts_with_any,
    intervals_overlap,
)
from availability_engine.services.booking.booking_service import BookingService
from availability_engine.services.calendar.calendar_service import CalendarService
from conftest import NOW, at, set_policy


@pytest.fixture
def ten_oclock(db, calendar, weekday_schedule, service_type):
    """Confirmed booking Monday 10:00-11:00"""
    return BookingService.create_booking(
        db, calendar.id, service_type.id, at(2, 10), customer_name="Anna de Vries", now=NOW
    )


class TestIntervalMath:

    def test_half_open_touching_is_no_overlap(self):
        assert not intervals_overlap(at(2, 9), at(2, 10), at(2, 10), at(2, 11))
        assert intervals_overlap(at(2, 9), at(2, 10, 1), at(2, 10), at(2, 11))

    def test_buffer_applies_to_both_sides(self):
        booked = [BookedInterval(at(2, 10), at(2, 11))]
        assert not conflicts_with_any(at(2, 11), at(2, 12), booked, 0)
        assert conflicts_with_any(at(2, 11), at(2, 12), booked, 15)
        assert conflicts_with_any(at(2, 9), at(2, 10), booked, 15)
        assert not conflicts_with_any(at(2, 11, 15), at(2, 12), booked, 15)


class TestConflictChecker:

    def test_overlap_found(self, db, calendar, ten_oclock):
        conflicts = ConflictChecker.find_conflicts(db, calendar.id, at(2, 10, 30), at(2, 11, 30))
        assert [b.id for b in conflicts] == [ten_oclock.id]

    def test_adjacent_allowed_without_buffer(self, db, calendar, ten_oclock):
        assert not ConflictChecker.has_conflict(db, calendar.id, at(2, 11), at(2, 12))
        assert not ConflictChecker.has_conflict(db, calendar.id, at(2, 9), at(2, 10))

    def test_adjacent_rejected_with_calendar_buffer(self, db, calendar, ten_oclock):
        set_policy(db, calendar, buffer_time=10)
        assert ConflictChecker.has_conflict(db, calendar.id, at(2, 11), at(2, 12))
        assert not ConflictChecker.has_conflict(db, calendar.id, at(2, 11, 10), at(2, 12))

    def test_explicit_buffer_overrides_policy(self, db, calendar, ten_oclock):
        assert ConflictChecker.has_conflict(db, calendar.id, at(2, 11), at(2, 12), buffer_minutes=5)

    def test_cancelled_booking_is_ignored(self, db, calendar, ten_oclock):
        BookingService.cancel_booking(db, ten_oclock.id, now=NOW)
        assert not ConflictChecker.has_conflict(db, calendar.id, at(2, 10), at(2, 11))

    def test_exclude_booking_id(self, db, calendar, ten_oclock):
        assert not ConflictChecker.has_conflict(
            db, calendar.id, at(2, 10), at(2, 11), exclude_booking_id=ten_oclock.id
        )

    def test_other_calendar_does_not_count(self, db, business, ten_oclock):
        other = CalendarService.create_calendar(db, business.id, name="Chair 2", slug="studio-noord-chair-2")
        assert not ConflictChecker.has_conflict(db, other.id, at(2, 10), at(2, 11))

    def test_empty_range_rejected(self, db, calendar):
        with pytest.raises(ValidationError) as exc_info:
            ConflictChecker.find_conflicts(db, calendar.id, at(2, 10), at(2, 10))
        assert exc_info.value.code == "invalid_time_range"

    def test_booked_intervals(self, db, calendar, ten_oclock):
        intervals = ConflictChecker.booked_intervals(db, calendar.id, at(2, 0), at(3, 0))
        assert intervals == [BookedInterval(at(2, 10), at(2, 11), ten_oclock.id)]
