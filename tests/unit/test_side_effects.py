from datetime import UTC, datetime
from uuid import uuid4

from app.db.schema import split_statements
from app.models.api.booking_request import BookingPayload
from app.models.domain.booking_domain import Booking
from app.services.booking.side_effects import build_profile, build_reminders
from app.services.notifications.formspree_client import build_confirmation_payload


def make_booking() -> Booking:
    now = datetime.now(UTC)
    return Booking(
        id=uuid4(),
        customer_name="Ana Silva",
        customer_email="ana@example.com",
        session_type="Presencial",
        service_name="Pacote de 4 Sessões",
        start_time=datetime(2025, 7, 2, 8, 0, tzinfo=UTC),
        end_time=datetime(2025, 7, 2, 9, 0, tzinfo=UTC),
        time_zone="Europe/Lisbon",
        created_at=now,
        updated_at=now,
    )


def make_payload(**overrides) -> BookingPayload:
    data = {
        "name": "Ana Silva",
        "email": "ana@example.com",
        "sessionType": "Presencial",
        "serviceName": "Pacote de 4 Sessões",
        "date": "2025-07-02",
        "time": "09:00",
    }
    data.update(overrides)
    return BookingPayload.model_validate(data)


def test_profile_takes_session_types_from_metadata_when_not_explicit():
    payload = make_payload(metadata={"preferredSessionTypes": ["Online", 3]}, preferredDays=["MON"])

    profile = build_profile(make_booking(), payload)

    assert profile.preferred_session_types == ["Online"]
    assert profile.preferred_days == ["MON"]
    assert profile.session_type == "Presencial"


def test_no_reminders_without_plan():
    assert build_reminders(make_booking(), make_payload()) == []


def test_confirmation_payload_uses_local_time():
    booking = make_booking()

    payload = build_confirmation_payload(booking, extra={"reminderOptIn": True})

    assert payload["sessionDate"] == "02/07/2025"
    assert payload["sessionTime"] == "09:00"
    assert payload["bookingReference"] == "2025-07-02 09:00"
    assert payload["_replyto"] == "ana@example.com"
    assert payload["phone"] == "Not provided"
    assert payload["reminderOptIn"] is True


def test_migration_statements_ignore_comments():
    sql = "-- header; with a semicolon\nCREATE TABLE a (id INT);\n\n-- note\nCREATE INDEX b ON a (id);\n"

    assert split_statements(sql) == ["CREATE TABLE a (id INT)", "CREATE INDEX b ON a (id)"]
