"""
Booking engine wiring.

Builds one set of collaborators per process (resolver with its cache,
ledger, records, clients) and exposes them to routes as FastAPI
dependencies. The lifespan in app.main stores the engine on app.state;
when it is absent (tests without lifespan) an in-memory engine is built
on first use.
"""

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Request

from app.config import Settings, settings
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger
from app.models.domain.booking_domain import BookingStatus
from app.services.availability_service import AvailabilityService
from app.services.booking.commit_workflow import BookingCommitWorkflow
from app.services.booking.ledger import (
    BookingLedger,
    InMemoryBookingLedger,
    PostgresBookingLedger,
)
from app.services.booking.records_repository import (
    BookingRecordsRepository,
    InMemoryBookingRecordsRepository,
    PostgresBookingRecordsRepository,
)
from app.services.booking.side_effects import BookingSideEffects
from app.services.calendar.google_client import GoogleCalendarService
from app.services.notifications.formspree_client import FormspreeNotifier
from app.services.schedule.config_resolver import ScheduleConfigResolver
from app.services.schedule.remote_config import (
    EdgeConfigClient,
    EdgeConfigScheduleSource,
    RemoteConfigError,
    RemoteConfigSource,
)

logger = get_logger(__name__)


@dataclass
class BookingEngine:
    resolver: ScheduleConfigResolver
    ledger: BookingLedger
    records: BookingRecordsRepository
    availability: AvailabilityService
    workflow: BookingCommitWorkflow
    calendar: GoogleCalendarService | None = None
    notifier: FormspreeNotifier | None = None
    remote_source: RemoteConfigSource | None = None

    async def close(self) -> None:
        """Close HTTP clients owned by the engine."""
        for name, resource in (
            ("calendar", self.calendar),
            ("notifier", self.notifier),
            ("remote_config", self.remote_source),
        ):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.error("Error closing engine resource", resource=name, error=str(e))


def _build_remote_source(app_settings: Settings) -> RemoteConfigSource | None:
    if not app_settings.EDGE_CONFIG:
        return None
    try:
        client = EdgeConfigClient(app_settings.EDGE_CONFIG)
    except RemoteConfigError as e:
        logger.warning("Invalid EDGE_CONFIG, using environment schedule", error=str(e))
        return None
    return EdgeConfigScheduleSource(client, item_key=app_settings.EDGE_CONFIG_ITEM_KEY)


def build_engine(app_settings: Settings = settings, use_database: bool | None = None) -> BookingEngine:
    """
    Assemble the engine.

    Args:
        app_settings: Settings to build from
        use_database: Force the Postgres (True) or in-memory (False) stores;
            defaults to whether the database pool is initialized
    """
    if use_database is None:
        use_database = db_pool.initialized

    remote_source = _build_remote_source(app_settings)
    resolver = ScheduleConfigResolver(source=remote_source, app_settings=app_settings)

    ledger: BookingLedger
    records: BookingRecordsRepository
    if use_database:
        ledger = PostgresBookingLedger(app_settings.BOOKING_TIME_ZONE)
        records = PostgresBookingRecordsRepository()
    else:
        ledger = InMemoryBookingLedger(app_settings.BOOKING_TIME_ZONE)

        async def is_confirmed(booking_id: UUID) -> bool:
            booking = await ledger.get_booking(booking_id)
            return booking is not None and booking.status == BookingStatus.CONFIRMED

        records = InMemoryBookingRecordsRepository(is_booking_confirmed=is_confirmed)

    calendar = (
        GoogleCalendarService.from_settings(app_settings)
        if app_settings.calendar_configured()
        else None
    )
    notifier = FormspreeNotifier.from_settings(app_settings)

    availability = AvailabilityService(
        resolver,
        ledger=ledger,
        calendar=calendar,
        calendar_id=app_settings.GOOGLE_CALENDAR_ID,
        freebusy_timeout=app_settings.CALENDAR_FREEBUSY_TIMEOUT_SECONDS,
    )
    workflow = BookingCommitWorkflow(resolver, ledger, BookingSideEffects(records, notifier))

    logger.info(
        "Booking engine built",
        ledger=type(ledger).__name__,
        calendar_configured=calendar is not None,
        remote_config_configured=remote_source is not None,
        notifications_configured=notifier is not None,
    )

    return BookingEngine(
        resolver=resolver,
        ledger=ledger,
        records=records,
        availability=availability,
        workflow=workflow,
        calendar=calendar,
        notifier=notifier,
        remote_source=remote_source,
    )


def get_engine(request: Request) -> BookingEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        engine = build_engine()
        request.app.state.engine = engine
    return engine


def get_availability_service(engine: BookingEngine = Depends(get_engine)) -> AvailabilityService:
    return engine.availability


def get_commit_workflow(engine: BookingEngine = Depends(get_engine)) -> BookingCommitWorkflow:
    return engine.workflow


def get_records(engine: BookingEngine = Depends(get_engine)) -> BookingRecordsRepository:
    return engine.records
