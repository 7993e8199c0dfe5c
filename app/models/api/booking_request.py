# app/models/api/booking_request.py
"""
Booking engine request models.
Payloads are camelCase on the wire and validated before any business rule runs.
"""

from datetime import date as calendar_date
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.domain.booking_domain import SessionType

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^\d{2}:\d{2}$"


def _real_date(value: str) -> str:
    try:
        calendar_date.fromisoformat(value)
    except ValueError as e:
        raise ValueError("date must be a real calendar date") from e
    return value


class AvailabilityRequest(BaseModel):
    """Request for the bookable times of one date."""

    model_config = ConfigDict(populate_by_name=True)

    date: str = Field(..., pattern=DATE_PATTERN, description="Local date (YYYY-MM-DD)")
    time_zone: str | None = Field(
        default=None, alias="timeZone", description="IANA zone used for reconciliation"
    )

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        return _real_date(value)

    def session_date(self) -> calendar_date:
        return calendar_date.fromisoformat(self.date)


class ReminderPlanItem(BaseModel):
    """One reminder to schedule relative to the session start."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    channel: str = Field(default="email", min_length=1, max_length=40)
    offset_minutes: int = Field(default=0, ge=0, alias="offsetMinutes")


class BookingPayload(BaseModel):
    """Request for booking one slot."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=180)
    email: EmailStr
    phone: str | None = Field(default=None, min_length=5, max_length=40)
    session_type: SessionType = Field(..., alias="sessionType")
    service_id: int | None = Field(default=None, gt=0, alias="serviceId")
    service_name: str = Field(..., min_length=1, max_length=180, alias="serviceName")
    date: str = Field(..., pattern=DATE_PATTERN)
    time: str = Field(..., pattern=TIME_PATTERN)
    message: str | None = Field(default=None, max_length=2000)
    reminder_opt_in: bool | None = Field(default=None, alias="reminderOptIn")
    preferred_session_types: list[str] | None = Field(default=None, alias="preferredSessionTypes")
    preferred_days: list[str] | None = Field(default=None, alias="preferredDays")
    preferred_time_ranges: list[dict[str, Any]] | None = Field(
        default=None, alias="preferredTimeRanges"
    )
    reminder_plan: list[ReminderPlanItem] | None = Field(default=None, alias="reminderPlan")
    locale: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        return _real_date(value)

    def session_date(self) -> calendar_date:
        return calendar_date.fromisoformat(self.date)

    def derived_session_types(self) -> list[str]:
        """Explicit preferences, else any list carried in metadata."""
        if self.preferred_session_types:
            return list(self.preferred_session_types)
        from_metadata = (self.metadata or {}).get("preferredSessionTypes")
        if isinstance(from_metadata, list):
            return [value for value in from_metadata if isinstance(value, str)]
        return []


class CustomerProfileRequest(BaseModel):
    """Lookup of a stored customer profile."""

    email: EmailStr
