from datetime import UTC, datetime

import pytest

from app.services.booking.errors import ConfigurationError
from app.services.calendar.google_client import (
    CALENDAR_API_BASE_URL,
    GOOGLE_TOKEN_URL,
    GoogleCalendarError,
    GoogleCalendarService,
    parse_free_busy,
)

TIME_MIN = datetime(2025, 11, 3, 0, 0, tzinfo=UTC)
TIME_MAX = datetime(2025, 11, 4, 0, 0, tzinfo=UTC)


def make_service() -> GoogleCalendarService:
    return GoogleCalendarService("client-id", "client-secret", "refresh-token")


def add_token_response(httpx_mock, access_token="access-1"):
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        json={"access_token": access_token, "expires_in": 3600},
    )


@pytest.mark.asyncio
async def test_free_busy_returns_busy_intervals(httpx_mock):
    service = make_service()
    add_token_response(httpx_mock)
    httpx_mock.add_response(
        method="POST",
        url=f"{CALENDAR_API_BASE_URL}/freeBusy",
        json={
            "calendars": {
                "primary": {
                    "busy": [
                        {"start": "2025-11-03T10:00:00Z", "end": "2025-11-03T11:00:00Z"},
                        {"start": "2025-11-03T14:30:00+01:00", "end": "2025-11-03T15:00:00+01:00"},
                    ]
                }
            }
        },
    )

    busy = await service.query_free_busy(TIME_MIN, TIME_MAX, time_zone="Europe/Lisbon")
    await service.close()

    assert [interval.start.hour for interval in busy] == [10, 13]
    assert all(interval.start.tzinfo is not None for interval in busy)

    freebusy_request = httpx_mock.get_requests()[-1]
    assert freebusy_request.headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_access_token_is_reused_until_expiry(httpx_mock):
    service = make_service()
    add_token_response(httpx_mock, "cached-token")

    first = await service.get_access_token()
    second = await service.get_access_token()
    await service.close()

    assert first == second == "cached-token"
    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_free_busy_error_mapping(httpx_mock):
    service = make_service()
    add_token_response(httpx_mock)
    httpx_mock.add_response(
        method="POST",
        url=f"{CALENDAR_API_BASE_URL}/freeBusy",
        status_code=404,
        json={"error": {"code": 404, "message": "Not Found"}},
    )

    with pytest.raises(GoogleCalendarError) as exc:
        await service.query_free_busy(TIME_MIN, TIME_MAX)
    await service.close()

    assert exc.value.status_code == 404
    assert "not found" in str(exc.value).lower()


@pytest.mark.asyncio
async def test_revoked_refresh_token_is_reported(httpx_mock):
    service = make_service()
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        status_code=400,
        json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
    )

    with pytest.raises(GoogleCalendarError) as exc:
        await service.query_free_busy(TIME_MIN, TIME_MAX)
    await service.close()

    assert exc.value.error_code == "invalid_grant"


def test_missing_credentials_are_a_configuration_error():
    with pytest.raises(ConfigurationError):
        GoogleCalendarService("client-id", "client-secret", "")


def test_parse_free_busy_surfaces_calendar_errors():
    with pytest.raises(GoogleCalendarError):
        parse_free_busy({"calendars": {"primary": {"errors": [{"reason": "notFound"}]}}})


def test_parse_free_busy_skips_incomplete_entries():
    data = {"calendars": {"primary": {"busy": [{"start": "2025-11-03T10:00:00Z"}]}}}

    assert parse_free_busy(data) == []
