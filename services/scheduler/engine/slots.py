"""
Candidate slot generation.

Every date of the requested range is tiled back-to-back with fixed-duration
slots inside the daily window. A trailing remainder shorter than the duration
is dropped, so a window too short for one slot simply yields nothing for that
day.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterator, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.common.logging_config import get_logger
from services.scheduler.engine.intervals import DailyWindow, TimeInterval
from services.scheduler.errors import InvalidRequestError

logger = get_logger(__name__)


@dataclass(frozen=True)
class SlotRequest:
    date_range_start: date
    date_range_end: date
    window: DailyWindow
    duration_minutes: int
    timezone: Optional[str] = None

    def __post_init__(self) -> None:
        # datetime is a date subclass; a datetime here means the caller mixed up fields
        for field_name in ("date_range_start", "date_range_end"):
            value = getattr(self, field_name)
            if not isinstance(value, date) or isinstance(value, datetime):
                raise InvalidRequestError(
                    "Date range bounds must be calendar dates",
                    field=field_name,
                    value=value,
                )
        if self.date_range_end < self.date_range_start:
            raise InvalidRequestError(
                "Date range end must not be before its start",
                field="date_range_end",
                value=self.date_range_end.isoformat(),
            )
        if not isinstance(self.window, DailyWindow):
            raise InvalidRequestError("A daily window is required", field="window")
        if (
            isinstance(self.duration_minutes, bool)
            or not isinstance(self.duration_minutes, int)
            or self.duration_minutes <= 0
        ):
            raise InvalidRequestError(
                "Duration must be a positive number of minutes",
                field="duration_minutes",
                value=self.duration_minutes,
            )
        if self.timezone is not None:
            # Resolve eagerly so a bad name fails here and not mid-generation
            self.zone

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def day_count(self) -> int:
        return (self.date_range_end - self.date_range_start).days + 1

    @property
    def zone(self) -> Optional[tzinfo]:
        if self.timezone is None:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise InvalidRequestError(
                "Unknown timezone", field="timezone", value=self.timezone
            )

    def dates(self) -> Iterator[date]:
        for offset in range(self.day_count):
            yield self.date_range_start + timedelta(days=offset)

    def slots_per_day(self) -> int:
        return self.window.minutes // self.duration_minutes


@dataclass(frozen=True, order=True)
class CandidateSlot:
    date: date
    interval: TimeInterval

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end


def iter_slots(request: SlotRequest) -> Iterator[CandidateSlot]:
    """Lazily yield candidate slots ordered by date, then start time."""
    step = request.duration
    zone = request.zone
    for day in request.dates():
        day_bounds = request.window.bounds_on(day, tzinfo=zone)
        cursor = day_bounds.start
        while cursor + step <= day_bounds.end:
            yield CandidateSlot(date=day, interval=TimeInterval(cursor, cursor + step))
            cursor += step


def generate_slots(request: SlotRequest) -> List[CandidateSlot]:
    slots = list(iter_slots(request))
    logger.debug(
        "Generated candidate slots",
        date_range_start=request.date_range_start.isoformat(),
        date_range_end=request.date_range_end.isoformat(),
        duration_minutes=request.duration_minutes,
        slot_count=len(slots),
    )
    return slots


def find_slot(
    request: SlotRequest, day: date, start: datetime, end: datetime
) -> Optional[CandidateSlot]:
    """Return the generated slot matching ``(day, start, end)``, if the request produces one."""
    for slot in iter_slots(request):
        if slot.date > day:
            break
        if slot.date == day and slot.start == start and slot.end == end:
            return slot
    return None
