import asyncio

import pytest

from app.models.domain.schedule_domain import DEFAULT_PERIODS, DEFAULT_WORKING_DAYS, WorkPeriod
from app.services.schedule.config_resolver import (
    ScheduleConfigResolver,
    parse_time_of_day,
    parse_working_days,
    parse_working_hours,
)
from app.services.schedule.remote_config import BookingSettings, WorkingHours
from conftest import FakeRemoteSource, make_settings


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_wraparound_day_range_walks_forward():
    assert parse_working_days("FRI-MON") == frozenset({5, 6, 0, 1})


def test_day_names_and_codes_mix():
    assert parse_working_days("Monday, wednesday FRI") == frozenset({1, 3, 5})
    assert parse_working_days(["MON-WED", "sat"]) == frozenset({1, 2, 3, 6})


def test_unknown_day_tokens_are_ignored():
    assert parse_working_days("FUNDAY, XYZ-MON") == frozenset()


def test_time_of_day_parsing():
    assert parse_time_of_day("09:30") == 570
    assert parse_time_of_day("9") == 540
    assert parse_time_of_day("24:00") == 1440
    assert parse_time_of_day("12:75") is None
    assert parse_time_of_day("noon") is None


def test_working_hours_multiple_ranges_and_invalid_dropped():
    periods = parse_working_hours("09:00-12:00; 14:00-18:00, 12:00-09:00, bogus")
    assert periods == (WorkPeriod(540, 720), WorkPeriod(840, 1080))


@pytest.mark.asyncio
async def test_remote_config_is_normalized():
    source = FakeRemoteSource(
        working_hours=WorkingHours(
            start="10:00",
            end="12:00",
            days=["Monday", "Tuesday"],
            ranges="10:00-12:00,13:00-15:00",
            time_zone="Europe/Madrid",
        ),
        booking_settings=BookingSettings(slot_minutes=30, min_advance_hours=2, max_advance_days=90),
    )
    resolver = ScheduleConfigResolver(source=source, app_settings=make_settings())

    config = await resolver.get_schedule_config()

    assert config.source == "remote"
    assert config.working_days == frozenset({1, 2})
    assert config.periods == (WorkPeriod(600, 720), WorkPeriod(780, 900))
    assert config.slot_minutes == 30
    assert config.time_zone == "Europe/Madrid"
    assert config.min_advance_hours == 2
    assert config.max_advance_days == 90
    assert config.cancellation_hours == 24


@pytest.mark.asyncio
async def test_remote_defaults_applied_for_empty_values():
    source = FakeRemoteSource(
        working_hours=WorkingHours(start="17:00", end="09:00", days=[], time_zone="Mars/Olympus"),
        booking_settings=BookingSettings(slot_minutes=2),
    )
    resolver = ScheduleConfigResolver(source=source, app_settings=make_settings())

    config = await resolver.get_schedule_config()

    assert config.working_days == DEFAULT_WORKING_DAYS
    assert config.periods == DEFAULT_PERIODS
    assert config.slot_minutes == 5
    assert config.time_zone == "Europe/Lisbon"


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_environment(remote_unavailable):
    resolver = ScheduleConfigResolver(
        source=remote_unavailable,
        app_settings=make_settings(WORKING_DAYS="FRI-MON", WORKING_HOURS="08:00-10:00", BOOKING_SLOT_MINUTES=45),
    )

    config = await resolver.get_schedule_config()

    assert config.source == "env"
    assert config.working_days == frozenset({5, 6, 0, 1})
    assert config.periods == (WorkPeriod(480, 600),)
    assert config.slot_minutes == 45


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_remote_fetch():
    source = FakeRemoteSource()
    resolver = ScheduleConfigResolver(source=source, app_settings=make_settings())

    configs = await asyncio.gather(*(resolver.get_schedule_config() for _ in range(5)))

    assert source.hours_calls == 1
    assert source.settings_calls == 1
    assert all(config is configs[0] for config in configs)


@pytest.mark.asyncio
async def test_cache_expires_after_ttl():
    source = FakeRemoteSource()
    clock = FakeClock()
    resolver = ScheduleConfigResolver(
        source=source, app_settings=make_settings(), ttl_seconds=300, clock=clock
    )

    await resolver.get_schedule_config()
    clock.now += 299
    await resolver.get_schedule_config()
    assert source.hours_calls == 1

    clock.now += 1
    await resolver.get_schedule_config()
    assert source.hours_calls == 2


@pytest.mark.asyncio
async def test_fallback_result_is_cached_too(remote_unavailable):
    resolver = ScheduleConfigResolver(source=remote_unavailable, app_settings=make_settings())

    await resolver.get_schedule_config()
    await resolver.get_schedule_config()

    assert remote_unavailable.hours_calls == 1


@pytest.mark.asyncio
async def test_sync_variant_never_fetches():
    source = FakeRemoteSource(booking_settings=BookingSettings(slot_minutes=30))
    resolver = ScheduleConfigResolver(source=source, app_settings=make_settings())

    assert resolver.get_schedule_config_sync().source == "env"
    assert source.hours_calls == 0

    await resolver.get_schedule_config()
    assert resolver.get_schedule_config_sync().slot_minutes == 30


@pytest.mark.asyncio
async def test_clear_cache_forces_refresh():
    source = FakeRemoteSource()
    resolver = ScheduleConfigResolver(source=source, app_settings=make_settings())

    await resolver.get_schedule_config()
    resolver.clear_cache()
    await resolver.get_schedule_config()

    assert source.hours_calls == 2
