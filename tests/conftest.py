"""Pytest fixtures for the availability and booking engine tests."""

import asyncio
import os
import time
from datetime import date, datetime, timezone
from types import SimpleNamespace
from typing import Optional

import pytest
from cryptography.fernet import Fernet

# Configure the app before it is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from sqlalchemy.orm import sessionmaker  # noqa: E402

from app import models, models_google_calendar  # noqa: E402, F401
from app.database import Base, build_engine  # noqa: E402
from app.domain.availability.conflicts import BookingCandidate, find_booking_conflict  # noqa: E402
from app.domain.availability.errors import BookingConflictError, StoreError  # noqa: E402
from app.domain.availability.schemas import (  # noqa: E402
    AvailabilitySettings,
    DaySchedule,
    ProviderOverrideLayer,
)
from app.domain.bookings import repository as booking_repository  # noqa: E402

# 2024-06-10 is a Monday; New York is UTC-4 in June
MONDAY = date(2024, 6, 10)
NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
WORKSPACE_TZ = "America/New_York"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def weekday_timesheet() -> dict:
    """Mon-Fri 09:00-17:00 with a 12:00-13:00 lunch break; weekend off"""
    open_day = {
        "enabled": True,
        "startTime": "09:00",
        "endTime": "17:00",
        "breaks": [{"id": "lunch", "start": "12:00", "end": "13:00"}],
    }
    closed_day = {"enabled": False, "startTime": "09:00", "endTime": "17:00", "breaks": []}
    timesheet = {name: dict(open_day) for name in ("Mon", "Tue", "Wed", "Thu", "Fri")}
    timesheet["Sat"] = dict(closed_day)
    timesheet["Sun"] = dict(closed_day)
    return timesheet


def make_settings(
    timesheet: Optional[dict] = None,
    individual: Optional[dict] = None,
    providers: Optional[dict] = None,
    tz: Optional[str] = WORKSPACE_TZ,
    auto_confirm: bool = False,
) -> AvailabilitySettings:
    timesheet = weekday_timesheet() if timesheet is None else timesheet
    return AvailabilitySettings(
        timesheet={name: DaySchedule(**day) for name, day in timesheet.items()},
        individual=individual or {},
        providers={
            pid: ProviderOverrideLayer(
                timesheet={n: DaySchedule(**d) for n, d in (layer.get("timesheet") or {}).items()}
                or None,
                individual=layer.get("individual"),
            )
            for pid, layer in (providers or {}).items()
        },
        timezone=tz,
        auto_confirm=auto_confirm,
    )


class FakeConfigStore:
    def __init__(self, settings=None, durations=None, error: Optional[Exception] = None):
        self.settings = {1: make_settings()} if settings is None else settings
        self.durations = durations or {}
        self.error = error

    async def get_availability_settings(self, workspace_id):
        if self.error:
            raise self.error
        return self.settings.get(workspace_id)

    async def get_event_type_duration(self, workspace_id, event_type_id):
        return self.durations.get(event_type_id)

    async def workspace_exists(self, workspace_id):
        return workspace_id in self.settings


class FakeBookingStore:
    """In-memory booking store with the same re-check-on-insert contract as SqlBookingStore"""

    def __init__(self, bookings=None, error: Optional[Exception] = None):
        self.bookings: list[BookingCandidate] = list(bookings or [])
        self.inserted: list[dict] = []
        self.contacts: dict[str, int] = {}
        self.error = error
        self.list_calls = 0

    async def list_bookings_for_range(self, workspace_id, range_start, range_end, provider_id=None):
        self.list_calls += 1
        if self.error:
            raise self.error
        return list(self.bookings)

    async def insert(self, booking_data):
        start_at = booking_data["start_at"]
        end_at = booking_data.get("end_at") or start_at
        provider_id = booking_data.get("service_provider_id")
        if find_booking_conflict(start_at, end_at, self.bookings, provider_id):
            raise BookingConflictError()
        booking_id = f"bk-{len(self.inserted) + 1}"
        self.inserted.append({**booking_data, "id": booking_id})
        self.bookings.append(
            BookingCandidate(
                start_at=start_at,
                end_at=booking_data.get("end_at"),
                status=booking_data["status"],
                service_provider_id=provider_id,
                id=booking_id,
            )
        )
        return SimpleNamespace(id=booking_id, status=booking_data["status"])

    async def reschedule(self, workspace_id, booking_id, start_at, end_at):
        for index, candidate in enumerate(self.bookings):
            if candidate.id == booking_id:
                self.bookings[index] = candidate._replace(start_at=start_at, end_at=end_at)
                return SimpleNamespace(id=booking_id, status=candidate.status)
        return None

    async def set_contact(self, booking_id, contact_id):
        self.contacts[booking_id] = contact_id


class FakeCalendar:
    def __init__(self, busy=None, error: Optional[Exception] = None, delay: float = 0):
        self.busy = busy or []
        self.error = error
        self.delay = delay

    async def get_busy_slots(self, workspace_id, time_min, time_max):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.busy)


class FakeContactResolver:
    def __init__(self, contact_id: Optional[int] = 42, error: Optional[Exception] = None):
        self.contact_id = contact_id
        self.error = error
        self.calls = []

    async def find_or_create(self, workspace_id, name, email, phone):
        self.calls.append((workspace_id, name, email, phone))
        if self.error:
            raise self.error
        return self.contact_id


@pytest.fixture
def store_error():
    return StoreError()


@pytest.fixture(autouse=True)
def reset_workspace_locks():
    """Locks bind to the event loop that first contends them; each test gets fresh ones"""
    booking_repository._workspace_locks.clear()
    yield
    booking_repository._workspace_locks.clear()


@pytest.fixture(params=["UTC0", "JST-9", "EST+5EDT,M3.2.0,M11.1.0"])
def host_tz(request):
    """Run a test under several process-local timezones (POSIX TZ strings need no zone files)"""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    original = os.environ.get("TZ")
    os.environ["TZ"] = request.param
    time.tzset()
    yield request.param
    if original is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = original
    time.tzset()


@pytest.fixture
def session_factory(tmp_path):
    """SQLite file database with every table created"""
    engine = build_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


def seed_workspace(
    factory,
    workspace_id: int = 1,
    tz: Optional[str] = WORKSPACE_TZ,
    settings: Optional[dict] = None,
    event_type_minutes: Optional[int] = 60,
) -> None:
    """Insert a workspace, its configuration blob and one event type (id = workspace_id * 10)"""
    db = factory()
    try:
        db.add(models.Workspace(id=workspace_id, name=f"Workspace {workspace_id}", slug=f"ws-{workspace_id}", timezone=tz))
        if settings is None:
            settings = {"availability": {"timesheet": weekday_timesheet()}}
        db.add(models.WorkspaceConfiguration(workspace_id=workspace_id, settings=settings))
        db.add(
            models.EventType(
                id=workspace_id * 10,
                workspace_id=workspace_id,
                title="Consultation",
                duration_minutes=event_type_minutes,
            )
        )
        db.commit()
    finally:
        db.close()


@pytest.fixture
def seeded_factory(session_factory):
    seed_workspace(session_factory)
    return session_factory
