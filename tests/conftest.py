import asyncio
from datetime import UTC, date, datetime, timedelta

import pytest

from app.config import Settings
from app.models.domain.schedule_domain import BusyInterval
from app.services.availability_service import AvailabilityService
from app.services.booking.commit_workflow import BookingCommitWorkflow
from app.services.booking.ledger import InMemoryBookingLedger
from app.services.booking.records_repository import InMemoryBookingRecordsRepository
from app.services.booking.side_effects import BookingSideEffects
from app.services.schedule.config_resolver import ScheduleConfigResolver
from app.services.schedule.remote_config import (
    BookingSettings,
    RemoteConfigError,
    RemoteConfigSource,
    WorkingHours,
)

# Monday 2025-10-20 08:00 Lisbon (07:00 UTC)
FIXED_NOW = datetime(2025, 10, 20, 7, 0, tzinfo=UTC)


def make_settings(**overrides) -> Settings:
    values = {
        "BOOKING_TIME_ZONE": "Europe/Lisbon",
        "WORKING_DAYS": "MON-FRI",
        "WORKING_HOURS": "09:00-12:00",
        "BOOKING_SLOT_MINUTES": 60,
        "MIN_ADVANCE_HOURS": 0,
        "MAX_ADVANCE_DAYS": 365,
        "CANCELLATION_HOURS": 24,
        "EDGE_CONFIG": None,
        "GOOGLE_CLIENT_ID": None,
        "GOOGLE_CLIENT_SECRET": None,
        "GOOGLE_REFRESH_TOKEN": None,
        "FORMSPREE_ID": None,
        "SUPABASE_DB_URL": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def future_weekday(weekday: int, weeks_ahead: int = 2) -> date:
    """A date at least `weeks_ahead` weeks from today falling on `weekday` (Monday=0)."""
    start = date.today() + timedelta(weeks=weeks_ahead)
    return start + timedelta(days=(weekday - start.weekday()) % 7)


class FakeRemoteSource(RemoteConfigSource):
    def __init__(
        self,
        working_hours: WorkingHours | None = None,
        booking_settings: BookingSettings | None = None,
        error: Exception | None = None,
    ):
        self.working_hours = working_hours or WorkingHours(
            start="09:00", end="17:00", days=["MON-FRI"], ranges=None, time_zone=None
        )
        self.booking_settings = booking_settings or BookingSettings(
            slot_minutes=60, min_advance_hours=None, max_advance_days=None, cancellation_hours=None
        )
        self.error = error
        self.hours_calls = 0
        self.settings_calls = 0

    async def get_working_hours(self) -> WorkingHours:
        self.hours_calls += 1
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return self.working_hours

    async def get_booking_settings(self) -> BookingSettings:
        self.settings_calls += 1
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return self.booking_settings


class FakeCalendar:
    def __init__(self, busy: list[BusyInterval] | None = None, error: Exception | None = None, delay: float = 0):
        self.busy = busy or []
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    async def query_free_busy(self, time_min, time_max, calendar_id="primary", time_zone=None):
        self.calls.append(
            {"time_min": time_min, "time_max": time_max, "calendar_id": calendar_id, "time_zone": time_zone}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.busy

    async def close(self):
        return None


class FakeNotifier:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.confirmations: list = []
        self.reminders: list = []

    async def send_booking_confirmation(self, booking, extra=None):
        if self.error:
            raise self.error
        self.confirmations.append((booking, extra))

    async def send_reminder(self, booking, channel="email"):
        if self.error:
            raise self.error
        self.reminders.append((booking, channel))

    async def close(self):
        return None


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def env_resolver():
    return ScheduleConfigResolver(source=None, app_settings=make_settings())


@pytest.fixture
def ledger():
    return InMemoryBookingLedger("Europe/Lisbon")


@pytest.fixture
def records():
    return InMemoryBookingRecordsRepository()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def workflow(env_resolver, ledger, records, notifier):
    return BookingCommitWorkflow(
        env_resolver,
        ledger,
        BookingSideEffects(records, notifier),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def availability_factory(env_resolver, ledger):
    def _build(calendar=None, **kwargs):
        return AvailabilityService(env_resolver, ledger=ledger, calendar=calendar, **kwargs)

    return _build


@pytest.fixture
def remote_unavailable():
    return FakeRemoteSource(error=RemoteConfigError("Edge Config unreachable"))


@pytest.fixture
def booking_payload():
    def _payload(**overrides):
        payload = {
            "name": "Ana Silva",
            "email": "Ana.Silva@Example.com",
            "phone": "+351912345678",
            "sessionType": "Online",
            "serviceName": "Sessão Única",
            "date": "2025-11-03",
            "time": "09:00",
            "message": "Primeira sessão",
        }
        payload.update(overrides)
        return payload

    return _payload
