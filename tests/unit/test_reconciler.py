from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from app.models.domain.schedule_domain import BusyInterval
from app.services.schedule.reconciler import day_bounds_utc, filter_available, slot_bounds

DAY = date(2025, 11, 5)
LISBON = "Europe/Lisbon"


def busy(start: str, end: str) -> BusyInterval:
    return BusyInterval.from_iso(start, end)


def test_partial_overlap_excludes_slot():
    # Lisbon is UTC+0 in November
    result = filter_available(
        ["09:00", "10:00", "11:00"],
        [busy("2025-11-05T10:00:00Z", "2025-11-05T10:30:00Z")],
        DAY,
        60,
        LISBON,
    )
    assert result == ["09:00", "11:00"]


def test_touching_boundaries_do_not_overlap():
    result = filter_available(
        ["09:00", "10:00", "11:00"],
        [busy("2025-11-05T08:00:00Z", "2025-11-05T09:00:00Z"), busy("2025-11-05T12:00:00Z", "2025-11-05T13:00:00Z")],
        DAY,
        60,
        LISBON,
    )
    assert result == ["09:00", "10:00", "11:00"]


def test_busy_interval_covering_several_slots():
    result = filter_available(
        ["09:00", "10:00", "11:00", "12:00"],
        [busy("2025-11-05T10:00:00Z", "2025-11-05T11:01:00Z")],
        DAY,
        60,
        LISBON,
    )
    assert result == ["09:00", "12:00"]


def test_busy_offsets_are_normalized():
    result = filter_available(
        ["09:00", "10:00"],
        [busy("2025-11-05T10:15:00+01:00", "2025-11-05T10:45:00+01:00")],
        DAY,
        60,
        LISBON,
    )
    assert result == ["10:00"]


def test_order_is_preserved_and_empty_busy_is_identity():
    candidates = ["11:00", "09:00", "10:00"]
    assert filter_available(candidates, [], DAY, 60, LISBON) == candidates


def test_slot_bounds_follow_the_zone_offset():
    start, end = slot_bounds(date(2025, 7, 2), "09:00", 60, ZoneInfo(LISBON))
    assert start == datetime(2025, 7, 2, 8, 0, tzinfo=UTC)
    assert end == datetime(2025, 7, 2, 9, 0, tzinfo=UTC)


def test_day_bounds_cover_the_local_day():
    start, end = day_bounds_utc(date(2025, 7, 2), ZoneInfo(LISBON))
    assert start == datetime(2025, 7, 1, 23, 0, tzinfo=UTC)
    assert end == datetime(2025, 7, 2, 23, 0, tzinfo=UTC)
