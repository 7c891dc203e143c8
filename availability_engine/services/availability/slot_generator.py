# availability_engine/services/availability/slot_generator.py
"""
Slot generation.

Expands the effective opening hours of a calendar into concrete bookable
slots. Everything here is pure: the caller loads the schedule window, the
policy and the active bookings, and passes "now" explicitly, so calling the
generator twice with the same inputs yields the same sequence.
"""
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterator, Sequence

from availability_engine.services.availability.conflict_checker import BookedInterval, conflicts_with_any
from availability_engine.services.availability.policy import earliest_bookable_start, last_bookable_date
from availability_engine.utils.time_utils import get_timezone, local_date, localize


@dataclass(frozen=True)
class Slot:
    start_time: datetime
    end_time: datetime

    def to_dict(self):
        return {"start_time": self.start_time.isoformat(), "end_time": self.end_time.isoformat()}


def _bookings_per_day(tz, booked: Sequence[BookedInterval]) -> Dict[date, int]:
    return Counter(local_date(tz, interval.start) for interval in booked)


def generate_slots(
        schedule,
        policy,
        effective_length: int,
        booked: Sequence[BookedInterval],
        now: datetime,
        start_date: date,
        days: int
) -> Iterator[Slot]:
    """
    Yield available slots for [start_date, start_date + days) in order.

    Each candidate reserves effective_length + buffer_time inside an open
    interval and candidates start every slot_duration minutes from the
    interval opening. A slot is dropped when it starts before the minimum
    notice, falls past the booking window, overlaps a buffered booking, or
    sits on a day that already reached max_bookings_per_day.
    """
    if effective_length <= 0:
        return

    tz = get_timezone(schedule.timezone)
    step = timedelta(minutes=policy.slot_duration)
    length = timedelta(minutes=effective_length)
    footprint = timedelta(minutes=effective_length + policy.buffer_time)
    not_before = earliest_bookable_start(policy, now)
    last_day = last_bookable_date(policy, tz, now)
    per_day = _bookings_per_day(tz, booked)

    for offset in range(days):
        day = start_date + timedelta(days=offset)
        if day > last_day:
            break
        if policy.max_bookings_per_day is not None and per_day.get(day, 0) >= policy.max_bookings_per_day:
            continue

        for open_at, close_at in schedule.intervals_for(day):
            # Step in wall-clock time so slots stay on the local grid across DST changes
            cursor = datetime.combine(day, open_at)
            closing = datetime.combine(day, close_at)
            while cursor + footprint <= closing:
                start = localize(tz, cursor)
                end = start + length
                if start >= not_before and not conflicts_with_any(start, end, booked, policy.buffer_time):
                    yield Slot(start_time=start, end_time=end)
                cursor += step
