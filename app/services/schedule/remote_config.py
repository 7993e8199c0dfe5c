"""
Remote schedule configuration source backed by Vercel Edge Config.

Reads the `app-config` item through the Edge Config read API and exposes
it as the two lookups the schedule resolver consumes: working hours and
booking settings.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

EDGE_CONFIG_BASE_URL = "https://edge-config.vercel.com"
REQUEST_TIMEOUT = 5  # seconds

_RANGE_SPLIT = re.compile(r"[,;]+")
_DAY_SPLIT = re.compile(r"[,\s]+")


class RemoteConfigError(Exception):
    """Raised when the remote configuration cannot be read or is malformed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class WorkingHours:
    """Working-hours lookup result. `ranges` carries the raw multi-range string when present."""

    start: str
    end: str
    days: list[str] = field(default_factory=list)
    ranges: str | None = None
    time_zone: str | None = None


@dataclass(slots=True)
class BookingSettings:
    slot_minutes: int | None = None
    min_advance_hours: int | None = None
    max_advance_days: int | None = None
    cancellation_hours: int | None = None


class RemoteConfigSource(ABC):
    """Remote schedule configuration. Either lookup may raise."""

    @abstractmethod
    async def get_working_hours(self) -> WorkingHours:
        raise NotImplementedError

    @abstractmethod
    async def get_booking_settings(self) -> BookingSettings:
        raise NotImplementedError

    async def close(self) -> None:
        return None


def parse_connection_string(connection_string: str) -> tuple[str, str]:
    """
    Split an Edge Config connection string into (config_id, token).

    Format: https://edge-config.vercel.com/<config_id>?token=<token>
    """
    parsed = urlparse(connection_string.strip())
    config_id = parsed.path.strip("/").split("/")[0] if parsed.path else ""
    token = parse_qs(parsed.query).get("token", [""])[0]
    if not config_id or not token:
        raise RemoteConfigError("EDGE_CONFIG connection string must include an id and a token")
    return config_id, token


class EdgeConfigClient:
    """Minimal async client for the Edge Config read API."""

    def __init__(self, connection_string: str, client: httpx.AsyncClient | None = None):
        self.config_id, self._token = parse_connection_string(connection_string)
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))

    async def close(self) -> None:
        await self._client.aclose()

    async def get_item(self, key: str) -> Any:
        url = f"{EDGE_CONFIG_BASE_URL}/{self.config_id}/item/{key}"
        try:
            response = await self._client.get(url, params={"token": self._token})
        except httpx.RequestError as e:
            logger.warning("Edge Config request failed", key=key, error=str(e))
            raise RemoteConfigError(f"Edge Config unreachable: {e}") from e

        if response.status_code == 404:
            raise RemoteConfigError(f"Edge Config item '{key}' not found", status_code=404)
        if not response.is_success:
            raise RemoteConfigError(
                f"Edge Config error (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RemoteConfigError(f"Edge Config returned invalid JSON: {e}") from e


class EdgeConfigScheduleSource(RemoteConfigSource):
    """Schedule lookups over the `app-config` Edge Config item."""

    def __init__(self, client: EdgeConfigClient, item_key: str = "app-config"):
        self._client = client
        self._item_key = item_key

    async def close(self) -> None:
        await self._client.close()

    async def _get_app_config(self) -> dict[str, Any]:
        data = await self._client.get_item(self._item_key)
        if not isinstance(data, dict):
            raise RemoteConfigError(f"Edge Config item '{self._item_key}' is not an object")
        return data

    async def get_working_hours(self) -> WorkingHours:
        data = await self._get_app_config()

        raw_hours = data.get("workingHours")
        if not isinstance(raw_hours, str) or "-" not in raw_hours:
            raise RemoteConfigError("workingHours missing from remote config")

        first_range = _RANGE_SPLIT.split(raw_hours)[0].strip()
        start, _, end = first_range.partition("-")

        raw_days = data.get("workingDays", "")
        if isinstance(raw_days, list):
            days = [str(day) for day in raw_days]
        else:
            days = [token for token in _DAY_SPLIT.split(str(raw_days)) if token]

        return WorkingHours(
            start=start.strip(),
            end=end.strip(),
            days=days,
            ranges=raw_hours,
            time_zone=data.get("timeZone"),
        )

    async def get_booking_settings(self) -> BookingSettings:
        data = await self._get_app_config()
        return BookingSettings(
            slot_minutes=data.get("bookingSlotMinutes"),
            min_advance_hours=data.get("minAdvanceBookingHours"),
            max_advance_days=data.get("maxAdvanceBookingDays"),
            cancellation_hours=data.get("cancellationPolicyHours"),
        )
