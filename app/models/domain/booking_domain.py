# app/models/domain/booking_domain.py
"""
Booking Domain Models
Ledger rows, customer profiles, reminder logs and commit outcomes.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class SessionType(StrEnum):
    ONLINE = "Online"
    PRESENCIAL = "Presencial"


class BookingDetails(BaseModel):
    """Everything the ledger needs to insert a reservation besides the instants."""

    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    session_type: SessionType
    service_id: int | None = None
    service_name: str
    notes: str | None = None
    time_zone: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class Booking(BaseModel):
    """A committed reservation in the bookings ledger."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    session_type: SessionType
    service_id: int | None = None
    service_name: str
    notes: str | None = None
    start_time: datetime
    end_time: datetime
    time_zone: str
    status: BookingStatus = BookingStatus.CONFIRMED
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_reminder_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Booking":
        data = dict(row)
        # JSONB comes back decoded; text columns from older rows may not
        if isinstance(data.get("metadata"), str):
            data["metadata"] = json.loads(data["metadata"])
        if data.get("metadata") is None:
            data["metadata"] = {}
        return cls.model_validate(data)

    def is_active(self) -> bool:
        return self.status != BookingStatus.CANCELLED


class CustomerProfile(BaseModel):
    """Latest known preferences for a customer, keyed by normalized email."""

    model_config = ConfigDict(extra="ignore")

    customer_email: str
    customer_name: str | None = None
    customer_phone: str | None = None
    session_type: str | None = None
    preferred_session_types: list[str] = Field(default_factory=list)
    preferred_days: list[str] = Field(default_factory=list)
    preferred_time_ranges: list[dict[str, Any]] = Field(default_factory=list)
    reminder_opt_in: bool = True
    locale: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] | None = None
    updated_at: datetime | None = None


class ReminderLog(BaseModel):
    """A scheduled reminder for a booking."""

    model_config = ConfigDict(extra="ignore")

    id: UUID | None = None
    booking_id: UUID
    channel: str = "email"
    status: Literal["pending", "sent", "failed"] = "pending"
    send_at: datetime
    sent_at: datetime | None = None
    error_message: str | None = None
    delivery_metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass(slots=True)
class SideEffectResult:
    """Outcome of one best-effort post-commit task."""

    name: str
    ok: bool
    error: str | None = None


class CommitStatus(StrEnum):
    COMMITTED = "committed"
    REJECTED = "rejected"
    CONFLICT = "conflict"


@dataclass(slots=True)
class CommitOutcome:
    """Terminal state of a booking attempt."""

    status: CommitStatus
    booking: Booking | None = None
    error: str | None = None
    status_code: int = 200
    details: Any = None
    available_times: list[str] = field(default_factory=list)
    side_effects: list[SideEffectResult] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.status == CommitStatus.COMMITTED
