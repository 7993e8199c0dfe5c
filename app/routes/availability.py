"""
Availability API Routes
Bookable times for a date, reconciled against the business calendar.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_availability_service
from app.infrastructure.observability.logging import get_logger
from app.models.api.booking_request import AvailabilityRequest
from app.models.api.booking_response import AvailabilityResponse
from app.routes.errors import engine_error_response, error_response
from app.services.availability_service import AvailabilityService
from app.services.booking.errors import BookingEngineError

logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


@router.post(
    "/availability",
    response_model=AvailabilityResponse,
    response_model_exclude_none=True,
)
async def post_availability(
    request: AvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Available slot start times for the requested date."""
    try:
        result = await service.get_availability(
            request.session_date(), time_zone=request.time_zone
        )
    except BookingEngineError as e:
        return engine_error_response(e)
    except Exception as e:
        logger.error("Availability check failed", date=request.date, error=str(e))
        return error_response("Internal server error", 500)

    return AvailabilityResponse(
        date=request.date,
        time_zone=result.time_zone,
        available_times=result.available_times,
        fallback=True if result.fallback else None,
        error=result.error,
    )
