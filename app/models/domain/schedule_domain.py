# app/models/domain/schedule_domain.py
"""
Schedule Domain Models
Working-hours configuration and busy intervals used by the availability engine.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

# Weekday integers follow the JS/Google convention: 0=Sunday .. 6=Saturday
DEFAULT_WORKING_DAYS = frozenset({1, 2, 3, 4, 5})
DEFAULT_PERIOD_START = 9 * 60
DEFAULT_PERIOD_END = 17 * 60
MIN_SLOT_MINUTES = 5


@dataclass(frozen=True, slots=True)
class WorkPeriod:
    """A working period in minutes since local midnight."""

    start_minutes: int
    end_minutes: int


DEFAULT_PERIODS = (WorkPeriod(DEFAULT_PERIOD_START, DEFAULT_PERIOD_END),)


@dataclass(frozen=True, slots=True)
class ScheduleConfig:
    """
    Resolved schedule for one cache window.

    Never mutated in place; the resolver swaps in a new instance on refresh.
    """

    working_days: frozenset[int] = DEFAULT_WORKING_DAYS
    slot_minutes: int = 60
    periods: tuple[WorkPeriod, ...] = DEFAULT_PERIODS
    time_zone: str = "Europe/Lisbon"
    min_advance_hours: int = 0
    max_advance_days: int = 365
    cancellation_hours: int = 24
    source: str = "env"

    def to_dict(self) -> dict:
        return {
            "working_days": sorted(self.working_days),
            "slot_minutes": self.slot_minutes,
            "periods": [
                {"start_minutes": p.start_minutes, "end_minutes": p.end_minutes}
                for p in self.periods
            ],
            "time_zone": self.time_zone,
            "min_advance_hours": self.min_advance_hours,
            "max_advance_days": self.max_advance_days,
            "cancellation_hours": self.cancellation_hours,
            "source": self.source,
        }


@dataclass(slots=True)
class ScheduleConfigCache:
    """Cached resolver value with its fetch time (monotonic seconds)."""

    value: ScheduleConfig
    fetched_at: float


@dataclass(frozen=True, slots=True)
class BusyInterval:
    """Externally sourced busy range, normalized to UTC."""

    start: datetime
    end: datetime

    @classmethod
    def from_datetimes(cls, start: datetime, end: datetime) -> "BusyInterval":
        return cls(start=_as_utc(start), end=_as_utc(end))

    @classmethod
    def from_iso(cls, start: str, end: str) -> "BusyInterval":
        return cls.from_datetimes(
            datetime.fromisoformat(start.replace("Z", "+00:00")),
            datetime.fromisoformat(end.replace("Z", "+00:00")),
        )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap; touching ranges do not overlap."""
        return _as_utc(start) < self.end and _as_utc(end) > self.start


@dataclass(slots=True)
class AvailabilityResult:
    """Availability for one date, possibly computed without busy reconciliation."""

    date: str
    time_zone: str
    available_times: list[str]
    slot_minutes: int
    fallback: bool = False
    error: str | None = None
    booked_times: list[str] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
