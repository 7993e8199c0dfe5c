"""
Post-commit side effects for a new booking.

Each task runs after the ledger insert has succeeded. A failing task is
logged and recorded as a SideEffectResult; it never changes the commit
outcome and never rolls the booking back.
"""

from collections.abc import Awaitable, Callable
from datetime import timedelta

from app.infrastructure.observability.logging import get_logger
from app.models.api.booking_request import BookingPayload
from app.models.domain.booking_domain import Booking, CustomerProfile, ReminderLog, SideEffectResult
from app.services.booking.errors import SideEffectFailure
from app.services.booking.records_repository import BookingRecordsRepository
from app.services.notifications.formspree_client import FormspreeNotifier

logger = get_logger(__name__)

EffectTask = Callable[[], Awaitable[None]]


def build_profile(booking: Booking, payload: BookingPayload) -> CustomerProfile:
    return CustomerProfile(
        customer_email=booking.customer_email,
        customer_name=payload.name,
        customer_phone=payload.phone,
        session_type=payload.session_type.value,
        preferred_session_types=payload.derived_session_types(),
        preferred_days=payload.preferred_days or [],
        preferred_time_ranges=payload.preferred_time_ranges or [],
        reminder_opt_in=payload.reminder_opt_in if payload.reminder_opt_in is not None else True,
        locale=payload.locale,
        notes=payload.message,
        metadata=payload.metadata,
    )


def build_reminders(booking: Booking, payload: BookingPayload) -> list[ReminderLog]:
    """Reminder rows for the requested plan; none when the customer opted out."""
    if payload.reminder_opt_in is False or not payload.reminder_plan:
        return []

    return [
        ReminderLog(
            booking_id=booking.id,
            channel=item.channel,
            send_at=booking.start_time - timedelta(minutes=item.offset_minutes),
            delivery_metadata={"offsetMinutes": item.offset_minutes},
        )
        for item in payload.reminder_plan
    ]


class BookingSideEffects:
    """Runs the best-effort tasks that follow a committed booking, in order."""

    def __init__(
        self,
        records: BookingRecordsRepository,
        notifier: FormspreeNotifier | None = None,
    ):
        self.records = records
        self.notifier = notifier

    async def run(self, booking: Booking, payload: BookingPayload) -> list[SideEffectResult]:
        tasks: list[tuple[str, EffectTask]] = [
            ("upsert_profile", lambda: self._upsert_profile(booking, payload)),
            ("enqueue_reminders", lambda: self._enqueue_reminders(booking, payload)),
            ("seed_engagement", lambda: self.records.seed_engagement(booking.id)),
            ("notify_confirmation", lambda: self._notify(booking, payload)),
        ]

        results: list[SideEffectResult] = []
        for name, task in tasks:
            results.append(await self._run_one(booking, name, task))
        return results

    async def _run_one(self, booking: Booking, name: str, task: EffectTask) -> SideEffectResult:
        try:
            await task()
            return SideEffectResult(name=name, ok=True)
        except Exception as e:
            failure = SideEffectFailure(str(e), effect=name)
            logger.error(
                "Booking side effect failed",
                booking_id=str(booking.id),
                effect=failure.effect,
                error=failure.message,
                error_type=type(e).__name__,
            )
            return SideEffectResult(name=name, ok=False, error=failure.message)

    async def _upsert_profile(self, booking: Booking, payload: BookingPayload) -> None:
        await self.records.upsert_profile(build_profile(booking, payload))

    async def _enqueue_reminders(self, booking: Booking, payload: BookingPayload) -> None:
        reminders = build_reminders(booking, payload)
        if reminders:
            await self.records.enqueue_reminders(reminders)

    async def _notify(self, booking: Booking, payload: BookingPayload) -> None:
        if self.notifier is None:
            logger.warning("FORMSPREE_ID not configured, skipping booking notification")
            return

        await self.notifier.send_booking_confirmation(
            booking,
            extra={
                "reminderOptIn": payload.reminder_opt_in if payload.reminder_opt_in is not None else True,
                "preferredSessionTypes": payload.derived_session_types(),
                "preferredDays": payload.preferred_days or [],
                "preferredTimeRanges": payload.preferred_time_ranges or [],
            },
        )
