"""
Booking API Routes
Commit, list and cancel bookings against the ledger.
"""

from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query

from app.dependencies import get_availability_service, get_commit_workflow
from app.infrastructure.observability.logging import get_logger
from app.models.api.booking_request import DATE_PATTERN
from app.models.api.booking_response import (
    BookingCancelledResponse,
    BookingCreatedResponse,
    BookingSummary,
    DayOverviewResponse,
)
from app.models.domain.booking_domain import Booking
from app.routes.errors import engine_error_response, error_response
from app.services.availability_service import AvailabilityService
from app.services.booking.commit_workflow import BookingCommitWorkflow
from app.services.booking.errors import BookingEngineError

logger = get_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _summary(booking: Booking) -> BookingSummary:
    return BookingSummary(
        id=str(booking.id),
        start_time=booking.start_time,
        end_time=booking.end_time,
        time_zone=booking.time_zone,
    )


@router.get("", response_model=DayOverviewResponse)
async def list_day_bookings(
    date_param: str = Query(..., alias="date", pattern=DATE_PATTERN),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Booked and remaining slot times for one date."""
    try:
        day = date.fromisoformat(date_param)
    except ValueError:
        return error_response("Invalid or missing date parameter", 400)

    try:
        overview = await service.get_day_overview(day)
    except BookingEngineError as e:
        return engine_error_response(e)
    except Exception as e:
        logger.error("Booking overview query failed", date=date_param, error=str(e))
        return error_response("Internal server error", 500)

    return DayOverviewResponse(
        date=date_param,
        time_zone=overview.time_zone,
        booked_times=overview.booked_times,
        available_times=overview.available_times,
        slot_minutes=overview.slot_minutes,
    )


@router.post("", response_model=BookingCreatedResponse)
async def create_booking(
    payload: dict[str, Any] = Body(...),
    workflow: BookingCommitWorkflow = Depends(get_commit_workflow),
):
    """Book one slot. Conflicts return 409 and are never reassigned."""
    try:
        outcome = await workflow.commit(payload)
    except Exception as e:
        logger.error("Booking creation failed", error=str(e), error_type=type(e).__name__)
        return error_response("Internal server error", 500)

    if not outcome.committed or outcome.booking is None:
        return error_response(outcome.error or "Booking failed", outcome.status_code, outcome.details)

    failed_effects = [result.name for result in outcome.side_effects if not result.ok]
    if failed_effects:
        logger.warning(
            "Booking committed with failed side effects",
            booking_id=str(outcome.booking.id),
            failed_effects=failed_effects,
        )

    return BookingCreatedResponse(
        booking=_summary(outcome.booking),
        available_times=outcome.available_times,
    )


@router.post("/{booking_id}/cancel", response_model=BookingCancelledResponse)
async def cancel_booking(
    booking_id: UUID,
    workflow: BookingCommitWorkflow = Depends(get_commit_workflow),
):
    """Cancel a confirmed booking outside the cancellation window."""
    try:
        booking = await workflow.cancel(booking_id)
    except BookingEngineError as e:
        return engine_error_response(e)
    except Exception as e:
        logger.error("Booking cancellation failed", booking_id=str(booking_id), error=str(e))
        return error_response("Internal server error", 500)

    return BookingCancelledResponse(booking=_summary(booking), status=booking.status.value)
