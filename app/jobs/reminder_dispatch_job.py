"""
Reminder Dispatch Job.
Delivers due reminder logs for confirmed bookings and records the
reminder bookkeeping on the booking row.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

from app.config import settings
from app.db.pool import db_pool
from app.dependencies import BookingEngine, build_engine
from app.infrastructure.observability.logging import get_logger
from app.models.domain.booking_domain import BookingStatus, ReminderLog
from app.services.booking.ledger import BookingLedger
from app.services.booking.records_repository import BookingRecordsRepository
from app.services.notifications.formspree_client import FormspreeNotifier, NotificationError

logger = get_logger(__name__)

# Job configuration
JOB_INTERVAL_MINUTES = 5
BATCH_SIZE = 50


class ReminderDispatchJobError(Exception):
    """Custom exception for reminder dispatch job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class ReminderDispatchMetrics:
    """Counters for one dispatch run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.reminders_found = 0
        self.reminders_sent = 0
        self.reminders_failed = 0
        self.reminders_skipped = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_failure(self, reminder: ReminderLog, error: str):
        self.reminders_failed += 1
        self.errors.append(
            {
                "reminder_id": str(reminder.id),
                "booking_id": str(reminder.booking_id),
                "error": error,
            }
        )
        logger.warning(
            "Reminder delivery failed",
            reminder_id=str(reminder.id),
            booking_id=str(reminder.booking_id),
            error=error,
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "reminder_dispatch",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "reminders_found": self.reminders_found,
            "reminders_sent": self.reminders_sent,
            "reminders_failed": self.reminders_failed,
            "reminders_skipped": self.reminders_skipped,
            "errors_count": len(self.errors),
        }


class ReminderDispatchJob:
    """Sends pending reminders whose send time has passed."""

    def __init__(
        self,
        ledger: BookingLedger,
        records: BookingRecordsRepository,
        notifier: FormspreeNotifier | None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        batch_size: int = BATCH_SIZE,
    ):
        self.ledger = ledger
        self.records = records
        self.notifier = notifier
        self._clock = clock
        self.batch_size = batch_size
        self.is_running = False
        self.job_metrics = ReminderDispatchMetrics()

    async def run_once(self) -> dict:
        """
        Dispatch one batch of due reminders.

        Raises:
            ReminderDispatchJobError: If notifications are not configured or
                due reminders cannot be listed
        """
        if self.is_running:
            logger.warning("Reminder dispatch already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        if self.notifier is None:
            raise ReminderDispatchJobError(
                "Reminder delivery requires FORMSPREE_ID", operation="run_once", recoverable=False
            )

        try:
            self.is_running = True
            self.job_metrics.reset()
            now = self._clock()

            try:
                due = await self.records.list_due_reminders(now, limit=self.batch_size)
            except Exception as e:
                raise ReminderDispatchJobError(
                    f"Failed to list due reminders: {e}", operation="list_due_reminders"
                ) from e

            self.job_metrics.reminders_found = len(due)
            for reminder in due:
                await self._dispatch(reminder, now)

            self.job_metrics.finalize()
            metrics = self.job_metrics.to_dict()
            logger.info("Reminder dispatch completed", **metrics)
            return metrics

        finally:
            self.is_running = False

    async def _dispatch(self, reminder: ReminderLog, now: datetime) -> None:
        booking = await self.ledger.get_booking(reminder.booking_id)
        if booking is None or booking.status != BookingStatus.CONFIRMED:
            self.job_metrics.reminders_skipped += 1
            await self.records.mark_reminder(
                reminder.id, "failed", error_message="Booking is no longer confirmed"
            )
            return

        try:
            await self.notifier.send_reminder(booking, channel=reminder.channel)
        except NotificationError as e:
            self.job_metrics.record_failure(reminder, str(e))
            await self.records.mark_reminder(reminder.id, "failed", error_message=str(e))
            return

        await self.records.mark_reminder(reminder.id, "sent", sent_at=now)
        await self.ledger.record_reminder_sent(booking.id, now)
        self.job_metrics.reminders_sent += 1


async def _open_engine() -> BookingEngine:
    """Engine on the Postgres stores; the pool is initialized once per process."""
    if not settings.database_configured():
        raise ReminderDispatchJobError(
            "Reminder automation requires SUPABASE_DB_URL", operation="open_engine", recoverable=False
        )

    if not db_pool.initialized:
        await db_pool.initialize()
    return build_engine(use_database=True)


async def _close_engine(engine: BookingEngine) -> None:
    await engine.close()
    await db_pool.close()


async def run_reminder_dispatch() -> dict:
    """Run a single dispatch against the configured database."""
    engine = await _open_engine()
    try:
        job = ReminderDispatchJob(engine.ledger, engine.records, engine.notifier)
        return await job.run_once()
    finally:
        await _close_engine(engine)


async def start_reminder_dispatch_scheduler(interval_seconds: float = JOB_INTERVAL_MINUTES * 60):
    """
    Dispatch due reminders every `interval_seconds` until cancelled.

    The pool and engine stay open across cycles and are closed when the
    loop exits.
    """
    logger.info("Starting reminder dispatch scheduler", interval_seconds=interval_seconds)

    engine = await _open_engine()
    job = ReminderDispatchJob(engine.ledger, engine.records, engine.notifier)
    try:
        while True:
            try:
                await job.run_once()
            except ReminderDispatchJobError as e:
                if not e.recoverable:
                    logger.error("Reminder dispatch cannot run", error=str(e))
                    raise
                logger.error("Reminder dispatch cycle failed", error=str(e))
            except Exception as e:
                logger.error(
                    "Reminder dispatch cycle failed", error=str(e), error_type=type(e).__name__
                )

            await asyncio.sleep(interval_seconds)
    finally:
        logger.info("Stopping reminder dispatch scheduler")
        await _close_engine(engine)
