"""
Formspree webhook client.
Delivers booking confirmations and reminders as form submissions.
"""

from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from app.config import Settings, settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.booking_domain import Booking

logger = get_logger(__name__)

FORMSPREE_BASE_URL = "https://formspree.io/f"
REQUEST_TIMEOUT = 10  # seconds


class NotificationError(Exception):
    """Raised when the notification webhook rejects or cannot receive a message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FormspreeNotifier:
    """Fire-and-forget POSTs to a Formspree form endpoint."""

    def __init__(self, form_id: str, client: httpx.AsyncClient | None = None):
        if not form_id:
            raise ValueError("form_id is required")
        self._url = f"{FORMSPREE_BASE_URL}/{form_id}"
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))

    @classmethod
    def from_settings(cls, app_settings: Settings = settings) -> "FormspreeNotifier | None":
        """Notifier for FORMSPREE_ID, or None when notifications are not configured."""
        if not app_settings.FORMSPREE_ID:
            return None
        return cls(app_settings.FORMSPREE_ID)

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, payload: dict[str, Any]) -> None:
        """
        Submit one message.

        Raises:
            NotificationError: On transport failure or a non-200 response
        """
        try:
            response = await self._client.post(
                self._url,
                json=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            logger.error("Formspree request failed", error=str(e))
            raise NotificationError(f"Failed to contact Formspree: {e}") from e

        if response.status_code != 200:
            message = response.text.strip() or response.reason_phrase
            logger.error(
                "Formspree rejected submission",
                status_code=response.status_code,
                response_text=message[:200],
            )
            raise NotificationError(message, status_code=response.status_code)

    async def send_booking_confirmation(
        self, booking: Booking, extra: dict[str, Any] | None = None
    ) -> None:
        await self.send(build_confirmation_payload(booking, extra))

    async def send_reminder(self, booking: Booking, channel: str = "email") -> None:
        local_start = booking.start_time.astimezone(ZoneInfo(booking.time_zone))
        await self.send(
            {
                "subject": f"Reminder: session on {local_start:%d/%m/%Y} at {local_start:%H:%M}",
                "name": booking.customer_name,
                "email": booking.customer_email,
                "_replyto": booking.customer_email,
                "sessionType": booking.session_type.value,
                "serviceName": booking.service_name,
                "sessionDate": local_start.strftime("%d/%m/%Y"),
                "sessionTime": local_start.strftime("%H:%M"),
                "channel": channel,
                "bookingId": str(booking.id),
            }
        )


def build_confirmation_payload(
    booking: Booking, extra: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Form fields for a new-booking notification."""
    local_start = booking.start_time.astimezone(ZoneInfo(booking.time_zone))
    session_date = local_start.strftime("%Y-%m-%d")
    session_time = local_start.strftime("%H:%M")

    payload: dict[str, Any] = {
        "name": booking.customer_name,
        "email": booking.customer_email,
        "_replyto": booking.customer_email,
        "phone": booking.customer_phone or "Not provided",
        "sessionType": booking.session_type.value,
        "serviceName": booking.service_name,
        "sessionDate": local_start.strftime("%d/%m/%Y"),
        "sessionTime": session_time,
        "message": booking.notes or "No additional message",
        "bookingReference": f"{session_date} {session_time}",
        "bookingId": str(booking.id),
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if extra:
        payload.update(extra)
    return payload
