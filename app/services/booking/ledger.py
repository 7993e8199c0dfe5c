"""
Booking Ledger - the authoritative store of committed bookings.

Guarantees at most one non-cancelled booking per start instant. The
Postgres ledger relies on the partial unique index
`bookings_active_start_time_uidx` (see migrations/001_booking_engine.sql)
so the check and the insert are one atomic statement.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import UTC, date, datetime
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from psycopg.types.json import Jsonb

from app.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from app.infrastructure.observability.logging import get_logger
from app.models.domain.booking_domain import Booking, BookingDetails, BookingStatus
from app.services.booking.errors import BookingNotFoundError, SlotConflictError
from app.services.schedule.reconciler import day_bounds_utc, slot_bounds

logger = get_logger(__name__)


def local_slot(instant: datetime, tz: ZoneInfo) -> str:
    return instant.astimezone(tz).strftime("%H:%M")


class BookingLedger(ABC):
    """Append-mostly booking store keyed by date and exact start instant."""

    def __init__(self, time_zone: str):
        self.time_zone = ZoneInfo(time_zone)

    @abstractmethod
    async def list_booked_times(self, day: date) -> set[str]:
        """Distinct local "HH:MM" start times with an active booking on `day`."""
        raise NotImplementedError

    @abstractmethod
    async def is_start_booked(self, start: datetime) -> bool:
        raise NotImplementedError

    async def is_slot_booked(self, day: date, slot: str) -> bool:
        start, _ = slot_bounds(day, slot, 0, self.time_zone)
        return await self.is_start_booked(start)

    @abstractmethod
    async def try_reserve(
        self, start: datetime, end: datetime, details: BookingDetails
    ) -> Booking:
        """
        Insert a confirmed booking unless an active one exists at `start`.

        Raises:
            SlotConflictError: If the start instant is already taken
        """
        raise NotImplementedError

    @abstractmethod
    async def get_booking(self, booking_id: UUID) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    async def cancel_booking(self, booking_id: UUID) -> Booking:
        """Transition a booking to cancelled. Rows are never deleted."""
        raise NotImplementedError

    @abstractmethod
    async def record_reminder_sent(self, booking_id: UUID, sent_at: datetime) -> None:
        raise NotImplementedError


class PostgresBookingLedger(BookingLedger):
    """Ledger on the Supabase `bookings` table."""

    @with_db_retry()
    async def list_booked_times(self, day: date) -> set[str]:
        day_start, day_end = day_bounds_utc(day, self.time_zone)
        rows = await fetch_all(
            """
            SELECT start_time
            FROM bookings
            WHERE start_time >= %s AND start_time < %s AND status <> 'cancelled'
            ORDER BY start_time
            """,
            (day_start, day_end),
        )
        return {local_slot(row["start_time"], self.time_zone) for row in rows}

    @with_db_retry()
    async def is_start_booked(self, start: datetime) -> bool:
        row = await fetch_one(
            "SELECT 1 AS taken FROM bookings WHERE start_time = %s AND status <> 'cancelled' LIMIT 1",
            (start.astimezone(UTC),),
        )
        return row is not None

    async def try_reserve(
        self, start: datetime, end: datetime, details: BookingDetails
    ) -> Booking:
        # No retry here: a replayed insert would collide with its own row
        row = await fetch_one(
            """
            INSERT INTO bookings (
                id, customer_name, customer_email, customer_phone, session_type,
                service_id, service_name, notes, start_time, end_time, time_zone,
                status, metadata, created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'confirmed', %s, NOW(), NOW()
            )
            ON CONFLICT (start_time) WHERE status <> 'cancelled' DO NOTHING
            RETURNING *
            """,
            (
                uuid4(),
                details.customer_name,
                details.customer_email.lower(),
                details.customer_phone,
                details.session_type.value,
                details.service_id,
                details.service_name,
                details.notes,
                start.astimezone(UTC),
                end.astimezone(UTC),
                details.time_zone,
                Jsonb(details.metadata),
            ),
        )

        if row is None:
            logger.info("Slot reservation conflict", start_time=start.isoformat())
            raise SlotConflictError(details={"startTime": start.astimezone(UTC).isoformat()})

        booking = Booking.from_row(row)
        logger.info(
            "Booking reserved",
            booking_id=str(booking.id),
            start_time=booking.start_time.isoformat(),
        )
        return booking

    @with_db_retry()
    async def get_booking(self, booking_id: UUID) -> Booking | None:
        row = await fetch_one("SELECT * FROM bookings WHERE id = %s", (booking_id,))
        return Booking.from_row(row) if row else None

    async def cancel_booking(self, booking_id: UUID) -> Booking:
        row = await fetch_one(
            """
            UPDATE bookings
            SET status = 'cancelled', updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (booking_id,),
        )
        if row is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        logger.info("Booking cancelled", booking_id=str(booking_id))
        return Booking.from_row(row)

    async def record_reminder_sent(self, booking_id: UUID, sent_at: datetime) -> None:
        affected = await execute_query(
            "UPDATE bookings SET last_reminder_at = %s, updated_at = NOW() WHERE id = %s",
            (sent_at.astimezone(UTC), booking_id),
        )
        if affected == 0:
            raise BookingNotFoundError(f"Booking {booking_id} not found")


class InMemoryBookingLedger(BookingLedger):
    """
    Process-local ledger for development and tests.

    Check-and-insert runs under one asyncio.Lock, which gives the same
    uniqueness guarantee as the database index within a single event loop.
    """

    def __init__(self, time_zone: str):
        super().__init__(time_zone)
        self._bookings: dict[UUID, Booking] = {}
        self._active_by_start: dict[datetime, UUID] = {}
        self._lock = asyncio.Lock()

    async def list_booked_times(self, day: date) -> set[str]:
        day_start, day_end = day_bounds_utc(day, self.time_zone)
        return {
            local_slot(start, self.time_zone)
            for start in self._active_by_start
            if day_start <= start < day_end
        }

    async def is_start_booked(self, start: datetime) -> bool:
        return start.astimezone(UTC) in self._active_by_start

    async def try_reserve(
        self, start: datetime, end: datetime, details: BookingDetails
    ) -> Booking:
        start_utc = start.astimezone(UTC)
        async with self._lock:
            if start_utc in self._active_by_start:
                raise SlotConflictError(details={"startTime": start_utc.isoformat()})

            now = datetime.now(UTC)
            booking = Booking(
                id=uuid4(),
                customer_name=details.customer_name,
                customer_email=details.customer_email.lower(),
                customer_phone=details.customer_phone,
                session_type=details.session_type,
                service_id=details.service_id,
                service_name=details.service_name,
                notes=details.notes,
                start_time=start_utc,
                end_time=end.astimezone(UTC),
                time_zone=details.time_zone,
                status=BookingStatus.CONFIRMED,
                metadata=dict(details.metadata),
                created_at=now,
                updated_at=now,
            )
            self._bookings[booking.id] = booking
            self._active_by_start[start_utc] = booking.id
            return booking

    async def get_booking(self, booking_id: UUID) -> Booking | None:
        return self._bookings.get(booking_id)

    async def cancel_booking(self, booking_id: UUID) -> Booking:
        async with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                raise BookingNotFoundError(f"Booking {booking_id} not found")

            cancelled = booking.model_copy(
                update={"status": BookingStatus.CANCELLED, "updated_at": datetime.now(UTC)}
            )
            self._bookings[booking_id] = cancelled
            if self._active_by_start.get(booking.start_time) == booking_id:
                del self._active_by_start[booking.start_time]
            return cancelled

    async def record_reminder_sent(self, booking_id: UUID, sent_at: datetime) -> None:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        self._bookings[booking_id] = booking.model_copy(
            update={"last_reminder_at": sent_at, "updated_at": datetime.now(UTC)}
        )
