"""
Google Calendar API client for free/busy queries.
Exchanges the stored refresh token for an access token and queries the
business calendar's busy periods.
"""

import asyncio
import time
from datetime import datetime
from typing import Any

import httpx

from app.config import Settings, settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.schedule_domain import BusyInterval
from app.services.booking.errors import ConfigurationError

logger = get_logger(__name__)

# Google Calendar API configuration
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_PRIMARY = "primary"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 2
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class GoogleCalendarError(Exception):
    """Custom exception for Google Calendar API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleCalendarService:
    """
    Service for Google Calendar free/busy lookups.

    Holds one refreshed access token in memory and renews it shortly
    before expiry.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        client: httpx.AsyncClient | None = None,
    ):
        if not client_id or not client_secret:
            raise ConfigurationError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required")
        if not refresh_token:
            raise ConfigurationError(
                "No refresh token available. Authorize the Google integration first."
            )

        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._client = client or self._create_client()
        self._access_token: str | None = None
        self._access_token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, app_settings: Settings = settings) -> "GoogleCalendarService":
        return cls(
            client_id=app_settings.GOOGLE_CLIENT_ID or "",
            client_secret=app_settings.GOOGLE_CLIENT_SECRET or "",
            refresh_token=app_settings.GOOGLE_REFRESH_TOKEN or "",
        )

    def _create_client(self) -> httpx.AsyncClient:
        """Create async HTTP client for Calendar API."""
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Calendar API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Calendar API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Calendar API retry loop exhausted")

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Handle and validate Calendar API response.

        Raises:
            GoogleCalendarError: If response contains errors
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise GoogleCalendarError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Calendar API {operation} failed with non-JSON response",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise GoogleCalendarError(
                f"Calendar API error (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        error_info = error_data.get("error", {})
        if isinstance(error_info, str):
            # OAuth token endpoint: {"error": "invalid_grant", "error_description": ...}
            error_code = error_info
            error_message = error_data.get("error_description", error_info)
        else:
            error_code = str(error_info.get("code", response.status_code))
            error_message = error_info.get("message", "Unknown Calendar API error")

        logger.error(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        raise GoogleCalendarError(
            self._map_calendar_error(str(response.status_code), error_message),
            error_code=error_code,
            status_code=response.status_code,
            response_data=error_data,
        )

    def _map_calendar_error(self, status_code: str, error_message: str) -> str:
        """Map Calendar API status codes to readable messages."""
        error_mappings = {
            "400": "Invalid calendar request format.",
            "401": "Authentication failed. Re-authorize the Google Calendar integration.",
            "403": "Permission denied. Check Google Calendar API access.",
            "404": "Calendar not found.",
            "429": "Too many calendar requests. Try again later.",
            "500": "Google Calendar service temporarily unavailable.",
        }
        return error_mappings.get(status_code, f"Calendar error: {error_message}")

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing it when close to expiry."""
        async with self._token_lock:
            if self._access_token and time.time() < self._access_token_expires_at:
                return self._access_token

            logger.info("Refreshing Google access token")
            response = await self._request_with_retry(
                "POST",
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            data = self._handle_api_response(response, "token_refresh")

            access_token = data.get("access_token")
            if not access_token:
                raise GoogleCalendarError("Token refresh returned no access token")

            expires_in = int(data.get("expires_in", 3600))
            self._access_token = access_token
            self._access_token_expires_at = time.time() + expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
            if data.get("refresh_token"):
                self._refresh_token = data["refresh_token"]

            return access_token

    async def query_free_busy(
        self,
        time_min: datetime,
        time_max: datetime,
        calendar_id: str = CALENDAR_PRIMARY,
        time_zone: str | None = None,
    ) -> list[BusyInterval]:
        """
        Busy periods for a calendar between time_min and time_max.

        Raises:
            GoogleCalendarError: If the free/busy query fails
        """
        try:
            access_token = await self.get_access_token()
            headers = {
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }

            query_data: dict[str, Any] = {
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "items": [{"id": calendar_id}],
            }
            if time_zone:
                query_data["timeZone"] = time_zone

            logger.info(
                "Querying calendar free/busy",
                calendar_id=calendar_id,
                time_min=query_data["timeMin"],
                time_max=query_data["timeMax"],
            )

            response = await self._request_with_retry(
                "POST", f"{CALENDAR_API_BASE_URL}/freeBusy", headers=headers, json=query_data
            )
            data = self._handle_api_response(response, "free_busy")

            intervals = parse_free_busy(data)
            logger.info("Free/busy query completed", busy_periods_count=len(intervals))
            return intervals

        except GoogleCalendarError:
            raise
        except Exception as e:
            logger.error("Unexpected error querying free/busy", error=str(e))
            raise GoogleCalendarError(f"Failed to query free/busy: {e}") from e

    async def health_check(self) -> dict[str, Any]:
        """Check that an access token can be obtained."""
        try:
            await self.get_access_token()
            return {"healthy": True, "service": "google_calendar"}
        except Exception as e:
            logger.error("Google Calendar service health check failed", error=str(e))
            return {"healthy": False, "service": "google_calendar", "error": str(e)}


def parse_free_busy(data: dict[str, Any]) -> list[BusyInterval]:
    """Collect busy intervals across every calendar in a freeBusy response."""
    intervals: list[BusyInterval] = []
    for calendar_info in (data.get("calendars") or {}).values():
        errors = (calendar_info or {}).get("errors") or []
        if errors:
            reason = errors[0].get("reason", "unknown")
            raise GoogleCalendarError(f"Free/busy unavailable for calendar: {reason}")
        for busy in (calendar_info or {}).get("busy") or []:
            start, end = busy.get("start"), busy.get("end")
            if start and end:
                intervals.append(BusyInterval.from_iso(start, end))
    return intervals
