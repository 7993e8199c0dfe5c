import httpx
import pytest

from app.services.schedule.remote_config import (
    EDGE_CONFIG_BASE_URL,
    EdgeConfigClient,
    EdgeConfigScheduleSource,
    RemoteConfigError,
    parse_connection_string,
)

CONNECTION = "https://edge-config.vercel.com/ecfg_abc123?token=secret-token"
ITEM_URL = f"{EDGE_CONFIG_BASE_URL}/ecfg_abc123/item/app-config?token=secret-token"


def test_parse_connection_string():
    assert parse_connection_string(CONNECTION) == ("ecfg_abc123", "secret-token")


def test_connection_string_without_token_is_rejected():
    with pytest.raises(RemoteConfigError):
        parse_connection_string("https://edge-config.vercel.com/ecfg_abc123")


@pytest.mark.asyncio
async def test_schedule_source_reads_app_config(httpx_mock):
    httpx_mock.add_response(
        method="GET",
        url=ITEM_URL,
        json={
            "workingHours": "09:00-12:00,14:00-18:00",
            "workingDays": "MON,TUE WED",
            "timeZone": "Europe/Lisbon",
        },
    )
    httpx_mock.add_response(
        method="GET",
        url=ITEM_URL,
        json={"bookingSlotMinutes": 30, "minAdvanceBookingHours": 2, "cancellationPolicyHours": 48},
    )
    source = EdgeConfigScheduleSource(EdgeConfigClient(CONNECTION))

    hours = await source.get_working_hours()
    booking_settings = await source.get_booking_settings()
    await source.close()

    assert (hours.start, hours.end) == ("09:00", "12:00")
    assert hours.ranges == "09:00-12:00,14:00-18:00"
    assert hours.days == ["MON", "TUE", "WED"]
    assert hours.time_zone == "Europe/Lisbon"
    assert booking_settings.slot_minutes == 30
    assert booking_settings.min_advance_hours == 2
    assert booking_settings.max_advance_days is None
    assert booking_settings.cancellation_hours == 48


@pytest.mark.asyncio
async def test_missing_item_raises(httpx_mock):
    httpx_mock.add_response(method="GET", url=ITEM_URL, status_code=404, json={"error": "not found"})
    client = EdgeConfigClient(CONNECTION)

    with pytest.raises(RemoteConfigError) as exc:
        await client.get_item("app-config")
    await client.close()

    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_working_hours_without_range_raises(httpx_mock):
    httpx_mock.add_response(method="GET", url=ITEM_URL, json={"workingDays": "MON-FRI"})
    source = EdgeConfigScheduleSource(EdgeConfigClient(CONNECTION))

    with pytest.raises(RemoteConfigError):
        await source.get_working_hours()
    await source.close()


@pytest.mark.asyncio
async def test_network_failure_raises_remote_config_error(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("refused"), url=ITEM_URL)
    client = EdgeConfigClient(CONNECTION)

    with pytest.raises(RemoteConfigError):
        await client.get_item("app-config")
    await client.close()
