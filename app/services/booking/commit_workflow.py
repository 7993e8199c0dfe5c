"""
Booking Commit Workflow.

Validate -> advance window -> business day -> slot validity -> past check
-> atomic reserve -> side effects -> respond.

Only the ledger insert decides which of two concurrent requests for the
same slot wins; every check before it is advisory. A conflict is terminal
and never reassigned to another slot.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from app.infrastructure.observability.logging import get_logger
from app.models.api.booking_request import BookingPayload
from app.models.domain.booking_domain import (
    Booking,
    BookingDetails,
    BookingStatus,
    CommitOutcome,
    CommitStatus,
)
from app.models.domain.schedule_domain import ScheduleConfig
from app.services.booking.errors import (
    BookingNotFoundError,
    BookingValidationError,
    BusinessRuleViolation,
    SlotConflictError,
)
from app.services.booking.ledger import BookingLedger
from app.services.booking.side_effects import BookingSideEffects
from app.services.schedule.config_resolver import ScheduleConfigResolver
from app.services.schedule.reconciler import slot_bounds
from app.services.schedule.slot_generator import (
    compute_slots_for_date,
    is_valid_slot,
    is_working_day,
)

logger = get_logger(__name__)

BOOKING_SOURCE = "website-booking-engine"


def utc_now() -> datetime:
    return datetime.now(UTC)


def validation_details(error: ValidationError) -> list[dict[str, Any]]:
    """JSON-safe summary of pydantic validation errors."""
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in error.errors()
    ]


class BookingCommitWorkflow:
    """Validates and commits booking requests against the ledger."""

    def __init__(
        self,
        resolver: ScheduleConfigResolver,
        ledger: BookingLedger,
        side_effects: BookingSideEffects,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.resolver = resolver
        self.ledger = ledger
        self.side_effects = side_effects
        self._clock = clock

    async def commit(self, raw: dict[str, Any] | BookingPayload) -> CommitOutcome:
        """
        Run one booking attempt to a terminal outcome.

        Validation and business-rule failures come back as `rejected`, a
        taken slot as `conflict`. Infrastructure errors from the ledger
        propagate to the caller.
        """
        try:
            payload = self._validate(raw)
            config = await self.resolver.get_schedule_config()
            start, end = self._check_rules(payload, config)
        except (BookingValidationError, BusinessRuleViolation) as e:
            logger.info("Booking request rejected", reason=e.message)
            return CommitOutcome(
                status=CommitStatus.REJECTED,
                error=e.message,
                status_code=e.status_code,
                details=e.details,
            )

        details = BookingDetails(
            customer_name=payload.name,
            customer_email=str(payload.email).lower(),
            customer_phone=payload.phone,
            session_type=payload.session_type,
            service_id=payload.service_id,
            service_name=payload.service_name,
            notes=payload.message,
            time_zone=config.time_zone,
            metadata={
                **(payload.metadata or {}),
                "sessionDate": payload.date,
                "sessionTime": payload.time,
                "slotMinutes": config.slot_minutes,
                "source": BOOKING_SOURCE,
                "capturedAt": self._clock().isoformat(),
            },
        )

        try:
            booking = await self.ledger.try_reserve(start, end, details)
        except SlotConflictError as e:
            logger.info(
                "Booking conflict",
                session_date=payload.date,
                session_time=payload.time,
            )
            return CommitOutcome(
                status=CommitStatus.CONFLICT,
                error=e.message,
                status_code=e.status_code,
                details=e.details,
            )

        logger.info(
            "Booking committed",
            booking_id=str(booking.id),
            session_date=payload.date,
            session_time=payload.time,
        )

        side_effects = await self.side_effects.run(booking, payload)
        available_times = await self._remaining_times(payload, config)

        return CommitOutcome(
            status=CommitStatus.COMMITTED,
            booking=booking,
            available_times=available_times,
            side_effects=side_effects,
        )

    async def cancel(self, booking_id: UUID) -> Booking:
        """
        Cancel a booking, freeing its slot.

        Raises:
            BookingNotFoundError: Unknown booking id
            BusinessRuleViolation: Booking not active or inside the cancellation window
        """
        booking = await self.ledger.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        if not booking.is_active():
            raise BusinessRuleViolation("Booking is already cancelled")
        if booking.status != BookingStatus.CONFIRMED:
            raise BusinessRuleViolation(f"Booking is {booking.status} and cannot be cancelled")

        config = await self.resolver.get_schedule_config()
        cutoff = booking.start_time - timedelta(hours=config.cancellation_hours)
        if self._clock() > cutoff:
            raise BusinessRuleViolation(
                "Cancellation window has passed",
                details={"cancellationHours": config.cancellation_hours},
            )

        return await self.ledger.cancel_booking(booking_id)

    def _validate(self, raw: dict[str, Any] | BookingPayload) -> BookingPayload:
        if isinstance(raw, BookingPayload):
            return raw
        if not isinstance(raw, dict):
            raise BookingValidationError("Invalid payload", details="Request body must be a JSON object")
        try:
            return BookingPayload.model_validate(raw)
        except ValidationError as e:
            raise BookingValidationError("Invalid payload", details=validation_details(e)) from e

    def _check_rules(
        self, payload: BookingPayload, config: ScheduleConfig
    ) -> tuple[datetime, datetime]:
        tz = ZoneInfo(config.time_zone)
        now = self._clock()
        day = payload.session_date()

        if (day - now.astimezone(tz).date()).days > config.max_advance_days:
            raise BusinessRuleViolation("Selected date is beyond the booking window")

        if not is_working_day(day, config):
            raise BusinessRuleViolation("Selected date is not available")

        if not is_valid_slot(day, payload.time, config):
            raise BusinessRuleViolation("Selected time is not available")

        start, end = slot_bounds(day, payload.time, config.slot_minutes, tz)
        if start < now + timedelta(hours=config.min_advance_hours):
            raise BusinessRuleViolation("Selected time is in the past")

        return start, end

    async def _remaining_times(self, payload: BookingPayload, config: ScheduleConfig) -> list[str]:
        day = payload.session_date()
        candidates = compute_slots_for_date(day, config)
        try:
            booked = await self.ledger.list_booked_times(day)
        except Exception as e:
            logger.warning("Could not list booked times after commit", error=str(e))
            return [slot for slot in candidates if slot != payload.time]
        return [slot for slot in candidates if slot not in booked]
