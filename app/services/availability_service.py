"""
Availability Service
Combines schedule config, slot generation, calendar busy periods and the
booking ledger into the bookable times of one date.

A calendar failure or timeout never fails the request: the raw candidate
slots are returned with `fallback=True` and the error message.
"""

import asyncio
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.schedule_domain import AvailabilityResult, BusyInterval, ScheduleConfig
from app.services.booking.errors import (
    BookingValidationError,
    BusinessRuleViolation,
    UpstreamDegradation,
)
from app.services.booking.ledger import BookingLedger
from app.services.calendar.google_client import GoogleCalendarService
from app.services.schedule.config_resolver import ScheduleConfigResolver
from app.services.schedule.reconciler import day_bounds_utc, filter_available
from app.services.schedule.slot_generator import compute_slots_for_date

logger = get_logger(__name__)


def resolve_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise BookingValidationError(f"Unknown time zone: {name}") from e


def check_booking_window(day: date, config: ScheduleConfig) -> None:
    """Reject dates more than `max_advance_days` past today in the business zone."""
    today = datetime.now(ZoneInfo(config.time_zone)).date()
    if (day - today).days > config.max_advance_days:
        raise BusinessRuleViolation("Selected date is beyond the booking window")


class AvailabilityService:
    """Computes bookable slots for a date."""

    def __init__(
        self,
        resolver: ScheduleConfigResolver,
        ledger: BookingLedger | None = None,
        calendar: GoogleCalendarService | None = None,
        calendar_id: str | None = None,
        freebusy_timeout: float | None = None,
        subtract_booked: bool = True,
    ):
        self.resolver = resolver
        self.ledger = ledger
        self.calendar = calendar
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self.freebusy_timeout = (
            freebusy_timeout
            if freebusy_timeout is not None
            else settings.CALENDAR_FREEBUSY_TIMEOUT_SECONDS
        )
        self.subtract_booked = subtract_booked

    async def get_availability(self, day: date, time_zone: str | None = None) -> AvailabilityResult:
        """
        Bookable times for `day`.

        Raises:
            BookingValidationError: If `time_zone` is not a known IANA zone
            BusinessRuleViolation: If `day` is beyond the booking window
        """
        config = await self.resolver.get_schedule_config()
        zone_name = time_zone or config.time_zone
        zone = resolve_zone(zone_name)
        check_booking_window(day, config)

        candidates = compute_slots_for_date(day, config)
        result = AvailabilityResult(
            date=day.isoformat(),
            time_zone=zone_name,
            available_times=candidates,
            slot_minutes=config.slot_minutes,
        )
        if not candidates:
            return result

        try:
            busy = await self._query_busy(day, zone, zone_name)
            result.available_times = filter_available(
                candidates, busy, day, config.slot_minutes, zone
            )
        except UpstreamDegradation as e:
            logger.warning(
                "Availability falling back to unreconciled slots",
                date=result.date,
                error=e.message,
            )
            result.fallback = True
            result.error = e.message

        if self.subtract_booked:
            booked = await self._booked_times(day)
            result.booked_times = sorted(booked)
            result.available_times = [t for t in result.available_times if t not in booked]

        return result

    async def get_day_overview(self, day: date) -> AvailabilityResult:
        """
        Booked and remaining times from the ledger alone; no calendar call.

        Raises:
            BusinessRuleViolation: If `day` is beyond the booking window
        """
        config = await self.resolver.get_schedule_config()
        check_booking_window(day, config)

        candidates = compute_slots_for_date(day, config)
        booked: set[str] = set()
        if candidates and self.ledger is not None:
            booked = await self.ledger.list_booked_times(day)

        return AvailabilityResult(
            date=day.isoformat(),
            time_zone=config.time_zone,
            available_times=[slot for slot in candidates if slot not in booked],
            slot_minutes=config.slot_minutes,
            booked_times=sorted(booked),
        )

    async def _query_busy(self, day: date, zone: ZoneInfo, zone_name: str) -> list[BusyInterval]:
        if self.calendar is None:
            raise UpstreamDegradation("Google Calendar integration not configured")

        time_min, time_max = day_bounds_utc(day, zone)
        try:
            return await asyncio.wait_for(
                self.calendar.query_free_busy(
                    time_min, time_max, calendar_id=self.calendar_id, time_zone=zone_name
                ),
                timeout=self.freebusy_timeout,
            )
        except TimeoutError as e:
            raise UpstreamDegradation(
                f"Calendar free/busy timed out after {self.freebusy_timeout:g}s"
            ) from e
        except Exception as e:
            raise UpstreamDegradation(str(e) or type(e).__name__) from e

    async def _booked_times(self, day: date) -> set[str]:
        if self.ledger is None:
            return set()
        try:
            return await self.ledger.list_booked_times(day)
        except Exception as e:
            logger.warning("Ledger unavailable for availability", date=day.isoformat(), error=str(e))
            return set()
