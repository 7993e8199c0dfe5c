"""
Schedule Configuration Resolver.

Turns the business's working-day set, working-hour periods and slot size
into a `ScheduleConfig`. The remote source is preferred; any failure falls
back to environment defaults, so resolution never raises.
"""

import asyncio
import re
import time
from collections.abc import Callable, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import Settings, settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.schedule_domain import (
    DEFAULT_PERIODS,
    DEFAULT_WORKING_DAYS,
    MIN_SLOT_MINUTES,
    ScheduleConfig,
    ScheduleConfigCache,
    WorkPeriod,
)
from app.services.schedule.remote_config import (
    BookingSettings,
    RemoteConfigSource,
    WorkingHours,
)

logger = get_logger(__name__)

DAY_CODES = {"SUN": 0, "MON": 1, "TUE": 2, "WED": 3, "THU": 4, "FRI": 5, "SAT": 6}
DAY_NAMES = {
    "SUNDAY": 0,
    "MONDAY": 1,
    "TUESDAY": 2,
    "WEDNESDAY": 3,
    "THURSDAY": 4,
    "FRIDAY": 5,
    "SATURDAY": 6,
}

_DAY_SEPARATORS = re.compile(r"[,\s]+")
_RANGE_SEPARATORS = re.compile(r"[,;]+")
_TIME_OF_DAY = re.compile(r"^(\d{1,2})(?::(\d{2}))?$")


def parse_day(token: str) -> int | None:
    """Map "MON", "Monday" or "monday" to a weekday integer (0=Sunday)."""
    key = token.strip().upper()
    if key in DAY_CODES:
        return DAY_CODES[key]
    return DAY_NAMES.get(key)


def parse_working_days(value: str | Iterable[str]) -> frozenset[int]:
    """
    Parse a working-days expression.

    Accepts comma/space separated tokens and ranges such as "MON-FRI".
    Ranges walk forward modulo 7, so "FRI-MON" spans the weekend.
    Unknown tokens are ignored; an empty result is returned as-is.
    """
    tokens = _DAY_SEPARATORS.split(value) if isinstance(value, str) else list(value)

    days: set[int] = set()
    for token in tokens:
        token = token.strip()
        if not token:
            continue

        if "-" in token:
            start_token, _, end_token = token.partition("-")
            start, end = parse_day(start_token), parse_day(end_token)
            if start is None or end is None:
                continue
            current = start
            while True:
                days.add(current)
                if current == end:
                    break
                current = (current + 1) % 7
        else:
            day = parse_day(token)
            if day is not None:
                days.add(day)

    return frozenset(days)


def parse_time_of_day(value: str) -> int | None:
    """Convert "HH:MM" (or a bare hour) to minutes since midnight, None when unparsable."""
    match = _TIME_OF_DAY.match(value.strip())
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    if minutes >= 60:
        return None
    total = hours * 60 + minutes
    if total > 24 * 60:
        return None
    return total


def parse_working_hours(value: str) -> tuple[WorkPeriod, ...]:
    """
    Parse "HH:MM-HH:MM" ranges separated by "," or ";".

    Unparsable and degenerate (start >= end) ranges are dropped.
    """
    periods: list[WorkPeriod] = []
    for segment in _RANGE_SEPARATORS.split(value):
        segment = segment.strip()
        if not segment:
            continue
        start_raw, sep, end_raw = segment.partition("-")
        if not sep or not start_raw or not end_raw:
            continue
        start = parse_time_of_day(start_raw)
        end = parse_time_of_day(end_raw)
        if start is None or end is None or start >= end:
            continue
        periods.append(WorkPeriod(start, end))
    return tuple(periods)


def _positive_int(value, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _valid_zone(name: str | None, default: str) -> str:
    if not name:
        return default
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Ignoring unknown remote time zone", time_zone=name)
        return default
    return name


class ScheduleConfigResolver:
    """
    Resolves and caches the schedule configuration.

    One instance per process, injected where needed. The cache is a
    `ScheduleConfigCache` swapped wholesale on refresh.
    """

    def __init__(
        self,
        source: RemoteConfigSource | None = None,
        app_settings: Settings = settings,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._settings = app_settings
        self._ttl = ttl_seconds if ttl_seconds is not None else app_settings.SCHEDULE_CACHE_TTL_SECONDS
        self._clock = clock
        self._cache: ScheduleConfigCache | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def source(self) -> RemoteConfigSource | None:
        return self._source

    async def get_schedule_config(self) -> ScheduleConfig:
        """Return a usable configuration; never raises."""
        cached = self._fresh_cached_value()
        if cached is not None:
            return cached

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            cached = self._fresh_cached_value()
            if cached is not None:
                return cached

            config = await self._resolve()
            self._cache = ScheduleConfigCache(value=config, fetched_at=self._clock())
            return config

    def get_schedule_config_sync(self) -> ScheduleConfig:
        """Last cached value, or environment defaults. Never performs network I/O."""
        if self._cache is not None:
            return self._cache.value
        return self.config_from_env()

    def clear_cache(self) -> None:
        self._cache = None

    def _fresh_cached_value(self) -> ScheduleConfig | None:
        cache = self._cache
        if cache is None:
            return None
        if self._clock() - cache.fetched_at >= self._ttl:
            return None
        return cache.value

    async def _resolve(self) -> ScheduleConfig:
        if self._source is None:
            logger.debug("Remote schedule config not configured, using environment defaults")
            return self.config_from_env()

        try:
            working_hours, booking_settings = await asyncio.gather(
                self._source.get_working_hours(),
                self._source.get_booking_settings(),
            )
            config = self._normalize(working_hours, booking_settings)
            logger.info(
                "Schedule config resolved from remote source",
                working_days=sorted(config.working_days),
                slot_minutes=config.slot_minutes,
                period_count=len(config.periods),
            )
            return config
        except Exception as e:
            logger.warning(
                "Remote schedule config unavailable, using environment defaults",
                error=str(e),
                error_type=type(e).__name__,
            )
            return self.config_from_env()

    def _normalize(self, hours: WorkingHours, booking: BookingSettings) -> ScheduleConfig:
        env = self._settings

        working_days = parse_working_days(hours.days) or DEFAULT_WORKING_DAYS

        range_expression = hours.ranges or f"{hours.start}-{hours.end}"
        periods = parse_working_hours(range_expression) or DEFAULT_PERIODS

        slot_minutes = max(
            MIN_SLOT_MINUTES, _positive_int(booking.slot_minutes, env.BOOKING_SLOT_MINUTES)
        )

        return ScheduleConfig(
            working_days=working_days,
            slot_minutes=slot_minutes,
            periods=periods,
            time_zone=_valid_zone(hours.time_zone, env.BOOKING_TIME_ZONE),
            min_advance_hours=_positive_int(booking.min_advance_hours, env.MIN_ADVANCE_HOURS),
            max_advance_days=_positive_int(booking.max_advance_days, env.MAX_ADVANCE_DAYS),
            cancellation_hours=_positive_int(booking.cancellation_hours, env.CANCELLATION_HOURS),
            source="remote",
        )

    def config_from_env(self) -> ScheduleConfig:
        """Build the configuration strictly from settings/environment."""
        env = self._settings
        return ScheduleConfig(
            working_days=parse_working_days(env.WORKING_DAYS.upper()) or DEFAULT_WORKING_DAYS,
            slot_minutes=max(MIN_SLOT_MINUTES, env.BOOKING_SLOT_MINUTES),
            periods=parse_working_hours(env.WORKING_HOURS) or DEFAULT_PERIODS,
            time_zone=env.BOOKING_TIME_ZONE,
            min_advance_hours=env.MIN_ADVANCE_HOURS,
            max_advance_days=env.MAX_ADVANCE_DAYS,
            cancellation_hours=env.CANCELLATION_HOURS,
            source="env",
        )
