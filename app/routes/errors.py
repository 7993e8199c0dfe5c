"""
Error envelope shared by the booking engine routes.
"""

from typing import Any

from fastapi.responses import JSONResponse

from app.models.api.booking_response import ErrorResponse
from app.services.booking.errors import BookingEngineError


def error_response(message: str, status_code: int, details: Any = None) -> JSONResponse:
    body = ErrorResponse(error=message, status=status_code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def engine_error_response(error: BookingEngineError) -> JSONResponse:
    return error_response(error.message, error.status_code, error.details)
