"""
Booking Records Repository
Customer profiles, reminder logs and engagement rows written after a commit.

None of these tables participate in the slot-uniqueness guarantee; writes
here are best-effort and may be retried or skipped without harming the ledger.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from psycopg.types.json import Jsonb

from app.db.helpers import execute_many, execute_query, fetch_all, fetch_one, with_db_retry
from app.infrastructure.observability.logging import get_logger
from app.models.domain.booking_domain import CustomerProfile, ReminderLog

logger = get_logger(__name__)

ReminderStatus = Literal["pending", "sent", "failed"]


class BookingRecordsRepository(ABC):
    @abstractmethod
    async def upsert_profile(self, profile: CustomerProfile) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_profile(self, email: str) -> CustomerProfile | None:
        raise NotImplementedError

    @abstractmethod
    async def enqueue_reminders(self, reminders: list[ReminderLog]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def list_due_reminders(self, now: datetime, limit: int = 50) -> list[ReminderLog]:
        """Pending reminders with send_at <= now whose booking is still confirmed."""
        raise NotImplementedError

    @abstractmethod
    async def mark_reminder(
        self,
        reminder_id: UUID,
        status: ReminderStatus,
        sent_at: datetime | None = None,
        error_message: str | None = None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def seed_engagement(self, booking_id: UUID) -> None:
        raise NotImplementedError


class PostgresBookingRecordsRepository(BookingRecordsRepository):
    async def upsert_profile(self, profile: CustomerProfile) -> None:
        await execute_query(
            """
            INSERT INTO customer_profiles (
                customer_email, customer_name, customer_phone, session_type,
                preferred_session_types, preferred_days, preferred_time_ranges,
                reminder_opt_in, locale, notes, metadata, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (customer_email) DO UPDATE SET
                customer_name = EXCLUDED.customer_name,
                customer_phone = EXCLUDED.customer_phone,
                session_type = EXCLUDED.session_type,
                preferred_session_types = EXCLUDED.preferred_session_types,
                preferred_days = EXCLUDED.preferred_days,
                preferred_time_ranges = EXCLUDED.preferred_time_ranges,
                reminder_opt_in = EXCLUDED.reminder_opt_in,
                locale = EXCLUDED.locale,
                notes = EXCLUDED.notes,
                metadata = EXCLUDED.metadata,
                updated_at = NOW()
            """,
            (
                profile.customer_email.lower(),
                profile.customer_name,
                profile.customer_phone,
                profile.session_type,
                Jsonb(profile.preferred_session_types),
                Jsonb(profile.preferred_days),
                Jsonb(profile.preferred_time_ranges),
                profile.reminder_opt_in,
                profile.locale,
                profile.notes,
                Jsonb(profile.metadata) if profile.metadata is not None else None,
            ),
        )

    @with_db_retry()
    async def get_profile(self, email: str) -> CustomerProfile | None:
        row = await fetch_one(
            "SELECT * FROM customer_profiles WHERE customer_email = %s",
            (email.strip().lower(),),
        )
        return CustomerProfile.model_validate(row) if row else None

    async def enqueue_reminders(self, reminders: list[ReminderLog]) -> int:
        return await execute_many(
            """
            INSERT INTO reminder_logs (id, booking_id, channel, status, send_at, delivery_metadata)
            VALUES (%s, %s, %s, 'pending', %s, %s)
            """,
            [
                (
                    reminder.id or uuid4(),
                    reminder.booking_id,
                    reminder.channel,
                    reminder.send_at.astimezone(UTC),
                    Jsonb(reminder.delivery_metadata),
                )
                for reminder in reminders
            ],
        )

    @with_db_retry()
    async def list_due_reminders(self, now: datetime, limit: int = 50) -> list[ReminderLog]:
        rows = await fetch_all(
            """
            SELECT r.*
            FROM reminder_logs r
            JOIN bookings b ON b.id = r.booking_id
            WHERE r.status = 'pending' AND r.send_at <= %s AND b.status = 'confirmed'
            ORDER BY r.send_at
            LIMIT %s
            """,
            (now.astimezone(UTC), limit),
        )
        return [ReminderLog.model_validate(row) for row in rows]

    async def mark_reminder(
        self,
        reminder_id: UUID,
        status: ReminderStatus,
        sent_at: datetime | None = None,
        error_message: str | None = None,
    ) -> None:
        await execute_query(
            "UPDATE reminder_logs SET status = %s, sent_at = %s, error_message = %s WHERE id = %s",
            (status, sent_at, error_message, reminder_id),
        )

    async def seed_engagement(self, booking_id: UUID) -> None:
        await execute_query(
            """
            INSERT INTO booking_engagements (booking_id, engagement_status, follow_up_required)
            VALUES (%s, 'pending', FALSE)
            ON CONFLICT (booking_id) DO NOTHING
            """,
            (booking_id,),
        )


class InMemoryBookingRecordsRepository(BookingRecordsRepository):
    """Dict-backed records for development and tests."""

    def __init__(self, is_booking_confirmed: Callable[[UUID], Awaitable[bool]] | None = None):
        self._booking_is_confirmed = is_booking_confirmed
        self.profiles: dict[str, CustomerProfile] = {}
        self.reminders: dict[UUID, ReminderLog] = {}
        self.engagements: dict[UUID, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def upsert_profile(self, profile: CustomerProfile) -> None:
        email = profile.customer_email.lower()
        self.profiles[email] = profile.model_copy(
            update={"customer_email": email, "updated_at": datetime.now(UTC)}
        )

    async def get_profile(self, email: str) -> CustomerProfile | None:
        return self.profiles.get(email.strip().lower())

    async def enqueue_reminders(self, reminders: list[ReminderLog]) -> int:
        async with self._lock:
            for reminder in reminders:
                stored = reminder.model_copy(update={"id": reminder.id or uuid4()})
                self.reminders[stored.id] = stored
        return len(reminders)

    async def list_due_reminders(self, now: datetime, limit: int = 50) -> list[ReminderLog]:
        due = [
            reminder
            for reminder in self.reminders.values()
            if reminder.status == "pending"
            and reminder.send_at <= now
            and (
                self._booking_is_confirmed is None
                or await self._booking_is_confirmed(reminder.booking_id)
            )
        ]
        due.sort(key=lambda reminder: reminder.send_at)
        return due[:limit]

    async def mark_reminder(
        self,
        reminder_id: UUID,
        status: ReminderStatus,
        sent_at: datetime | None = None,
        error_message: str | None = None,
    ) -> None:
        reminder = self.reminders.get(reminder_id)
        if reminder is None:
            return
        self.reminders[reminder_id] = reminder.model_copy(
            update={"status": status, "sent_at": sent_at, "error_message": error_message}
        )

    async def seed_engagement(self, booking_id: UUID) -> None:
        self.engagements.setdefault(
            booking_id,
            {"engagement_status": "pending", "follow_up_required": False},
        )
