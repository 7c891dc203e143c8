"""
Pytest configuration and fixtures
"""
import os
import tempfile

# Settings are read at import time, so the environment has to be ready first
_TEST_DIR = tempfile.mkdtemp(prefix="availability-engine-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["EVENT_DISPATCH_ON_COMMIT"] = "false"
os.environ["BOOKING_MAX_RETRIES"] = "5"
os.environ["BOOKING_RETRY_BACKOFF_MS"] = "5"

from datetime import datetime, time, timezone

import pytest

from availability_engine.config.database import SessionLocal, engine
from availability_engine.models import Base
from availability_engine.services.calendar.calendar_service import CalendarService, ServiceTypeService
from availability_engine.services.schedule.schedule_service import ScheduleService

# Sunday 1 March 2026, 08:00 UTC. Monday 2 March is the first working day.
NOW = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def at(day: int, hour: int, minute: int = 0, month: int = 3) -> datetime:
    """UTC instant in 2026"""
    return datetime(2026, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db():
    """Fresh schema and session per test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def business(db):
    return CalendarService.create_business(db, "Studio Noord", "UTC")


@pytest.fixture
def calendar(db, business):
    """UTC calendar, 30 minute grid, no buffer, auto-confirm"""
    return CalendarService.create_calendar(
        db,
        business.id,
        name="Chair 1",
        slug="studio-noord-chair-1",
        policy={"slot_duration": 30, "booking_window_days": 60},
    )


@pytest.fixture
def weekday_schedule(db, calendar):
    """Monday to Friday, 09:00-17:00"""
    schedule = ScheduleService.create_schedule(db, calendar.id, "Office hours", is_default=True)
    for day_of_week in range(1, 6):
        ScheduleService.add_rule(db, schedule.id, day_of_week, time(9, 0), time(17, 0))
    return schedule


@pytest.fixture
def service_type(db, calendar):
    """One hour haircut"""
    return ServiceTypeService.create_service_type(db, calendar.id, name="Haircut", duration=60, price=35)


def set_policy(db, calendar, **changes):
    return CalendarService.update_settings(db, calendar.id, changes)
