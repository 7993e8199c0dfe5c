"""
Slot generation for a single date.

Pure functions of (date, ScheduleConfig): the same inputs always give the
same ordered slot list.
"""

from datetime import date

from app.models.domain.schedule_domain import ScheduleConfig

# Tolerance for boundary comparison at the end of a period
BOUNDARY_EPSILON = 1e-4


def weekday_index(day: date) -> int:
    """Weekday with Sunday as 0, matching the working-days configuration."""
    return (day.weekday() + 1) % 7


def is_working_day(day: date, config: ScheduleConfig) -> bool:
    return weekday_index(day) in config.working_days


def format_slot(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slot_to_minutes(slot: str) -> int:
    hours, _, minutes = slot.partition(":")
    return int(hours) * 60 + int(minutes or 0)


def compute_slots_for_date(day: date, config: ScheduleConfig) -> list[str]:
    """
    Candidate slot start times ("HH:MM") for `day`.

    Periods are walked in configured order, so the result is chronological
    only when the periods are. Overlapping periods produce duplicate slots;
    no deduplication happens here.
    """
    if not is_working_day(day, config):
        return []

    slots: list[str] = []
    step = config.slot_minutes

    for period in config.periods:
        cursor = period.start_minutes
        while cursor + step <= period.end_minutes + BOUNDARY_EPSILON:
            slots.append(format_slot(cursor))
            cursor += step

    return slots


def is_valid_slot(day: date, slot: str, config: ScheduleConfig) -> bool:
    return slot in compute_slots_for_date(day, config)
