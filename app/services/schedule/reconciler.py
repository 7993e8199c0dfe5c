"""
Busy-interval reconciliation.

Drops candidate slots that overlap any external busy interval. Overlap is
half-open, so a slot that ends exactly when a busy interval starts (or
starts exactly when one ends) is kept.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from app.models.domain.schedule_domain import BusyInterval


def slot_bounds(
    day: date, slot: str, slot_minutes: int, tz: ZoneInfo
) -> tuple[datetime, datetime]:
    """Absolute [start, end) of a "HH:MM" slot on `day` in `tz`, returned in UTC."""
    hours, _, minutes = slot.partition(":")
    local_start = datetime.combine(day, time(int(hours), int(minutes or 0)), tzinfo=tz)
    start = local_start.astimezone(UTC)
    return start, start + timedelta(minutes=slot_minutes)


def day_bounds_utc(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC [start, end) of a local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def filter_available(
    candidate_slots: Sequence[str],
    busy_intervals: Iterable[BusyInterval],
    day: date,
    slot_minutes: int,
    tz: ZoneInfo | str,
) -> list[str]:
    """Subsequence of `candidate_slots` with no busy overlap, order preserved."""
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    busy = list(busy_intervals)
    if not busy:
        return list(candidate_slots)

    available: list[str] = []
    for slot in candidate_slots:
        start, end = slot_bounds(day, slot, slot_minutes, zone)
        if any(interval.overlaps(start, end) for interval in busy):
            continue
        available.append(slot)
    return available
