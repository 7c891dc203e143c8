"""
Tests for the booking writer: policy checks, conflicts, status transitions,
outbox events and concurrent writers
"""
import threading
from datetime import datetime

import pytest

from availability_engine.config.database import SessionLocal
from availability_engine.core.exceptions import ConflictError, NotFoundError, PolicyError, ValidationError
from availability_engine.models.domain_event import DomainEvent
from availability_engine.services.availability.availability_service import AvailabilityService
from availability_engine.services.booking.booking_service import BookingService
from conftest import NOW, at, set_policy


def book(db, calendar, service_type, start, **kwargs):
    kwargs.setdefault("customer_name", "Anna de Vries")
    kwargs.setdefault("now", NOW)
    return BookingService.create_booking(db, calendar.id, service_type.id, start, **kwargs)


def monday_starts(db, calendar, service_type):
    slots = AvailabilityService.get_available_slots(
        db, calendar.id, service_type.id, start_date=at(2, 0).date(), days=1, now=NOW
    )
    return [slot.start_time for slot in slots]


def event_types(db, aggregate_id):
    events = db.query(DomainEvent).filter(DomainEvent.aggregate_id == aggregate_id).all()
    return sorted(event.event_type for event in events)


@pytest.mark.usefixtures("weekday_schedule")
class TestCreateBooking:

    def test_booking_takes_the_slot(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10), customer_email="anna@example.com")

        assert booking.status == "confirmed"
        assert booking.end_time == at(2, 11)
        assert booking.confirmed_at == NOW
        assert float(booking.total_price) == 35.0

        starts = monday_starts(db, calendar, service_type)
        assert at(2, 10) not in starts
        assert at(2, 9, 30) not in starts
        assert at(2, 9) in starts and at(2, 11) in starts

    def test_overlap_is_rejected(self, db, calendar, service_type):
        first = book(db, calendar, service_type, at(2, 10))

        with pytest.raises(ConflictError) as exc_info:
            book(db, calendar, service_type, at(2, 10, 30), customer_name="Bram")

        assert exc_info.value.code == "slot_unavailable"
        assert exc_info.value.details["conflicting_booking_ids"] == [str(first.id)]
        assert exc_info.value.status_code == 409

    def test_back_to_back_is_fine(self, db, calendar, service_type):
        book(db, calendar, service_type, at(2, 10))
        second = book(db, calendar, service_type, at(2, 11), customer_name="Bram")
        assert second.start_time == at(2, 11)

    def test_buffer_rejects_back_to_back(self, db, calendar, service_type):
        set_policy(db, calendar, buffer_time=15)
        book(db, calendar, service_type, at(2, 10))

        with pytest.raises(ConflictError):
            book(db, calendar, service_type, at(2, 11), customer_name="Bram")

    def test_minimum_notice(self, db, calendar, service_type):
        set_policy(db, calendar, minimum_notice_hours=48)
        with pytest.raises(PolicyError) as exc_info:
            book(db, calendar, service_type, at(2, 9))
        assert exc_info.value.code == "minimum_notice"
        assert exc_info.value.status_code == 422

    def test_booking_window(self, db, calendar, service_type):
        set_policy(db, calendar, booking_window_days=1)
        with pytest.raises(PolicyError) as exc_info:
            book(db, calendar, service_type, at(3, 9))
        assert exc_info.value.code == "booking_window"

    def test_outside_opening_hours(self, db, calendar, service_type):
        with pytest.raises(PolicyError) as exc_info:
            book(db, calendar, service_type, at(2, 16, 30))
        assert exc_info.value.code == "outside_availability"

        with pytest.raises(PolicyError):
            book(db, calendar, service_type, at(7, 10))  # Saturday

    def test_force_skips_opening_hours_but_not_conflicts(self, db, calendar, service_type):
        saturday = book(db, calendar, service_type, at(7, 10), force=True, booking_source="staff")
        assert saturday.booking_source == "staff"

        with pytest.raises(ConflictError):
            book(db, calendar, service_type, at(7, 10, 30), force=True)

    def test_daily_limit(self, db, calendar, service_type):
        set_policy(db, calendar, max_bookings_per_day=1)
        book(db, calendar, service_type, at(2, 9))

        with pytest.raises(PolicyError) as exc_info:
            book(db, calendar, service_type, at(2, 13), customer_name="Bram")
        assert exc_info.value.code == "daily_limit_reached"

        with pytest.raises(PolicyError):
            book(db, calendar, service_type, at(2, 13), customer_name="Bram", force=True)

        assert monday_starts(db, calendar, service_type) == []

    def test_end_time_must_match_service(self, db, calendar, service_type):
        with pytest.raises(ValidationError) as exc_info:
            book(db, calendar, service_type, at(2, 10), end_time=at(2, 10, 30))
        assert exc_info.value.code == "end_time_mismatch"

        booking = book(db, calendar, service_type, at(2, 10), end_time=at(2, 11))
        assert booking.end_time == at(2, 11)

    def test_naive_datetime_rejected(self, db, calendar, service_type):
        with pytest.raises(ValidationError) as exc_info:
            book(db, calendar, service_type, datetime(2026, 3, 2, 10, 0))
        assert exc_info.value.code == "naive_datetime"

    def test_confirmation_required_starts_pending(self, db, calendar, service_type):
        set_policy(db, calendar, confirmation_required=True)
        booking = book(db, calendar, service_type, at(2, 10))

        assert booking.status == "pending"
        assert booking.confirmed_at is None
        # Pending bookings hold their time too
        assert at(2, 10) not in monday_starts(db, calendar, service_type)

    def test_inactive_calendar(self, db, calendar, service_type):
        calendar.is_active = False
        db.commit()
        with pytest.raises(PolicyError) as exc_info:
            book(db, calendar, service_type, at(2, 10))
        assert exc_info.value.code == "calendar_inactive"

    def test_unknown_service_type(self, db, calendar):
        with pytest.raises(NotFoundError) as exc_info:
            BookingService.create_booking(
                db, calendar.id, "00000000-0000-0000-0000-000000000000", at(2, 10),
                customer_name="Anna", now=NOW,
            )
        assert exc_info.value.code == "service_type_not_found"

    def test_invalid_calendar_id(self, db):
        with pytest.raises(ValidationError) as exc_info:
            BookingService.create_booking(db, "not-a-uuid", "also-not", at(2, 10), customer_name="Anna", now=NOW)
        assert exc_info.value.code == "invalid_id"

    def test_created_event_in_outbox(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10))
        event = db.query(DomainEvent).filter(DomainEvent.aggregate_id == booking.id).one()

        assert event.event_type == "booking.created"
        assert event.status == "pending"
        assert event.calendar_id == calendar.id
        assert event.payload["start_time"] == at(2, 10).isoformat()

    def test_rejected_booking_leaves_no_event(self, db, calendar, service_type):
        book(db, calendar, service_type, at(2, 10))
        with pytest.raises(ConflictError):
            book(db, calendar, service_type, at(2, 10))
        assert db.query(DomainEvent).count() == 1


@pytest.mark.usefixtures("weekday_schedule")
class TestTransitions:

    def test_cancel_frees_the_slot(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10))
        cancelled = BookingService.cancel_booking(db, booking.id, reason="Sick", now=NOW)

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at == NOW
        assert cancelled.cancellation_reason == "Sick"
        assert at(2, 10) in monday_starts(db, calendar, service_type)

        rebooked = book(db, calendar, service_type, at(2, 10), customer_name="Bram")
        assert rebooked.id != booking.id
        assert event_types(db, booking.id) == ["booking.cancelled", "booking.created"]

    def test_cancel_twice_is_invalid(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10))
        BookingService.cancel_booking(db, booking.id, now=NOW)

        with pytest.raises(ValidationError) as exc_info:
            BookingService.cancel_booking(db, booking.id, now=NOW)
        assert exc_info.value.code == "invalid_transition"

    def test_cancellations_disabled(self, db, calendar, service_type):
        set_policy(db, calendar, allow_cancellations=False)
        booking = book(db, calendar, service_type, at(2, 10))

        with pytest.raises(PolicyError) as exc_info:
            BookingService.cancel_booking(db, booking.id, now=NOW)
        assert exc_info.value.code == "cancellations_disabled"

        assert BookingService.cancel_booking(db, booking.id, force=True, now=NOW).status == "cancelled"

    def test_cancellation_deadline(self, db, calendar, service_type):
        set_policy(db, calendar, cancellation_deadline_hours=24)
        booking = book(db, calendar, service_type, at(2, 10))

        with pytest.raises(PolicyError) as exc_info:
            BookingService.cancel_booking(db, booking.id, now=at(2, 8))
        assert exc_info.value.code == "cancellation_deadline_passed"

        assert BookingService.cancel_booking(db, booking.id, now=at(1, 9)).status == "cancelled"

    def test_confirm_pending(self, db, calendar, service_type):
        set_policy(db, calendar, confirmation_required=True)
        booking = book(db, calendar, service_type, at(2, 10))

        confirmed = BookingService.confirm_booking(db, booking.id, now=at(1, 9))
        assert confirmed.status == "confirmed"
        assert confirmed.confirmed_at == at(1, 9)

        with pytest.raises(ValidationError):
            BookingService.confirm_booking(db, booking.id)

    def test_complete_and_no_show(self, db, calendar, service_type):
        first = book(db, calendar, service_type, at(2, 10))
        second = book(db, calendar, service_type, at(2, 12), customer_name="Bram")

        assert BookingService.complete_booking(db, first.id, now=at(2, 11)).status == "completed"
        assert BookingService.mark_no_show(db, second.id).status == "no-show"
        assert event_types(db, second.id) == ["booking.created", "booking.no_show"]

        # Finished bookings no longer hold time
        assert at(2, 10) in monday_starts(db, calendar, service_type)

    def test_complete_requires_confirmed(self, db, calendar, service_type):
        set_policy(db, calendar, confirmation_required=True)
        booking = book(db, calendar, service_type, at(2, 10))
        with pytest.raises(ValidationError) as exc_info:
            BookingService.complete_booking(db, booking.id)
        assert exc_info.value.details["current_status"] == "pending"

    def test_unknown_booking(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            BookingService.get_booking(db, "00000000-0000-0000-0000-000000000000")
        assert exc_info.value.code == "booking_not_found"


@pytest.mark.usefixtures("weekday_schedule")
class TestReschedule:

    def test_moves_booking_and_frees_old_time(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10))
        moved = BookingService.reschedule_booking(db, booking.id, at(2, 14), now=NOW)

        assert moved.id == booking.id
        assert (moved.start_time, moved.end_time) == (at(2, 14), at(2, 15))
        starts = monday_starts(db, calendar, service_type)
        assert at(2, 10) in starts
        assert at(2, 14) not in starts

        event = db.query(DomainEvent).filter(DomainEvent.event_type == "booking.rescheduled").one()
        assert event.payload["previous"]["start_time"] == at(2, 10).isoformat()

    def test_overlapping_itself_is_allowed(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10))
        moved = BookingService.reschedule_booking(db, booking.id, at(2, 10, 30), now=NOW)
        assert moved.start_time == at(2, 10, 30)

    def test_conflict_with_other_booking(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10))
        book(db, calendar, service_type, at(2, 14), customer_name="Bram")

        with pytest.raises(ConflictError):
            BookingService.reschedule_booking(db, booking.id, at(2, 13, 30), now=NOW)
        assert BookingService.get_booking(db, booking.id).start_time == at(2, 10)

    def test_daily_limit_ignores_the_moved_booking(self, db, calendar, service_type):
        set_policy(db, calendar, max_bookings_per_day=1)
        booking = book(db, calendar, service_type, at(2, 10))
        assert BookingService.reschedule_booking(db, booking.id, at(2, 15), now=NOW).start_time == at(2, 15)

    def test_cancelled_cannot_be_rescheduled(self, db, calendar, service_type):
        booking = book(db, calendar, service_type, at(2, 10))
        BookingService.cancel_booking(db, booking.id, now=NOW)
        with pytest.raises(ValidationError) as exc_info:
            BookingService.reschedule_booking(db, booking.id, at(2, 14), now=NOW)
        assert exc_info.value.code == "invalid_transition"


@pytest.mark.usefixtures("weekday_schedule")
class TestListBookings:

    def test_filters_and_total(self, db, calendar, service_type):
        book(db, calendar, service_type, at(2, 9))
        second = book(db, calendar, service_type, at(2, 11), customer_name="Bram")
        book(db, calendar, service_type, at(3, 9), customer_name="Cees")
        BookingService.cancel_booking(db, second.id, now=NOW)

        total, bookings = BookingService.list_bookings(db, calendar.id)
        assert total == 3
        assert [b.start_time for b in bookings] == [at(2, 9), at(2, 11), at(3, 9)]

        total, bookings = BookingService.list_bookings(db, calendar.id, status="cancelled")
        assert total == 1 and bookings[0].id == second.id

        total, _ = BookingService.list_bookings(db, calendar.id, start=at(3, 0), end=at(4, 0))
        assert total == 1

    def test_unknown_status(self, db, calendar):
        with pytest.raises(ValidationError):
            BookingService.list_bookings(db, calendar.id, status="archived")


@pytest.mark.integration
@pytest.mark.usefixtures("weekday_schedule")
class TestConcurrentWriters:

    def test_exactly_one_of_two_identical_requests_wins(self, db, calendar, service_type):
        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def attempt(name):
            session = SessionLocal()
            try:
                barrier.wait(timeout=10)
                booking = BookingService.create_booking(
                    session, calendar.id, service_type.id, at(2, 10), customer_name=name, now=NOW
                )
                outcome = ("ok", booking.id)
            except ConflictError as e:
                outcome = ("conflict", e.code)
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=(name,)) for name in ("Anna", "Bram")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert sorted(kind for kind, _ in results) == ["conflict", "ok"]

        total, bookings = BookingService.list_bookings(db, calendar.id)
        assert total == 1
        assert bookings[0].start_time == at(2, 10)
        assert db.query(DomainEvent).count() == 1

    def test_different_slots_both_succeed(self, db, calendar, service_type):
        barrier = threading.Barrier(2)
        results = []

        def attempt(start):
            session = SessionLocal()
            try:
                barrier.wait(timeout=10)
                results.append(BookingService.create_booking(
                    session, calendar.id, service_type.id, start, customer_name="Anna", now=NOW
                ).start_time)
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(start,)) for start in (at(2, 9), at(2, 13))]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert sorted(results) == [at(2, 9), at(2, 13)]
        assert BookingService.list_bookings(db, calendar.id)[0] == 2
