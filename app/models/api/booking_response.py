# app/models/api/booking_response.py
"""
Booking engine response models.
Serialized with camelCase keys to match the booking site's client.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AvailabilityResponse(_CamelModel):
    success: bool = True
    date: str
    time_zone: str = Field(..., alias="timeZone")
    available_times: list[str] = Field(..., alias="availableTimes")
    fallback: bool | None = None
    error: str | None = None


class BookingSummary(_CamelModel):
    id: str
    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    time_zone: str = Field(..., alias="timeZone")


class BookingCreatedResponse(_CamelModel):
    success: bool = True
    booking: BookingSummary
    available_times: list[str] = Field(..., alias="availableTimes")


class DayOverviewResponse(_CamelModel):
    success: bool = True
    date: str
    time_zone: str = Field(..., alias="timeZone")
    booked_times: list[str] = Field(..., alias="bookedTimes")
    available_times: list[str] = Field(..., alias="availableTimes")
    slot_minutes: int = Field(..., alias="slotMinutes")


class BookingCancelledResponse(_CamelModel):
    success: bool = True
    booking: BookingSummary
    status: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    status: int
    details: Any = None
