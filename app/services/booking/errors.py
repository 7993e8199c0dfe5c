"""
Error taxonomy for the availability and booking engine.

Only validation, business-rule and conflict errors change the primary
response; configuration and upstream failures degrade, side-effect
failures are absorbed.
"""

from typing import Any


class BookingEngineError(Exception):
    """Base exception carrying the HTTP-equivalent status for routes."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(BookingEngineError):
    """Missing or invalid required configuration (credentials, connection strings)."""

    status_code = 500


class BookingValidationError(BookingEngineError):
    """Malformed or missing request fields."""

    status_code = 400


class BusinessRuleViolation(BookingEngineError):
    """Non-working day, invalid slot, past time or outside the booking window."""

    status_code = 400


class SlotConflictError(BookingEngineError):
    """The slot already holds an active booking."""

    status_code = 409

    def __init__(self, message: str = "Selected time is already booked", details: Any = None):
        super().__init__(message, details=details)


class BookingNotFoundError(BookingEngineError):
    status_code = 404


class UpstreamDegradation(BookingEngineError):
    """Calendar busy-query failed or timed out; availability falls back."""

    status_code = 503


class SideEffectFailure(BookingEngineError):
    """A post-commit task failed. Logged, never surfaced."""

    def __init__(self, message: str, effect: str):
        super().__init__(message)
        self.effect = effect
