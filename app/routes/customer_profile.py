"""
Customer profile lookup, used to prefill the booking form.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_records
from app.infrastructure.observability.logging import get_logger
from app.models.api.booking_request import CustomerProfileRequest
from app.models.domain.booking_domain import CustomerProfile
from app.routes.errors import error_response
from app.services.booking.records_repository import BookingRecordsRepository

logger = get_logger(__name__)

router = APIRouter(tags=["customer-profile"])


@router.post("/customer-profile", response_model=CustomerProfile | None)
async def get_customer_profile(
    request: CustomerProfileRequest,
    records: BookingRecordsRepository = Depends(get_records),
):
    """Stored profile for an email, or null."""
    try:
        return await records.get_profile(str(request.email))
    except Exception as e:
        logger.error("Customer profile lookup failed", error=str(e))
        return error_response("Internal server error", 500)
