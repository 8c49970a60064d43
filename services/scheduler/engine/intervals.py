from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from services.scheduler.errors import InvalidRequestError


def _is_aware(value: datetime) -> bool:
    return value.tzinfo is not None and value.utcoffset() is not None


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Half-open interval ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise InvalidRequestError(
                "Interval bounds must be datetimes",
                details={"start": str(self.start), "end": str(self.end)},
            )
        if _is_aware(self.start) != _is_aware(self.end):
            raise InvalidRequestError(
                "Interval cannot mix naive and timezone-aware datetimes",
                details={"start": self.start.isoformat(), "end": self.end.isoformat()},
            )
        if self.start >= self.end:
            raise InvalidRequestError(
                "Interval start must be before its end",
                details={"start": self.start.isoformat(), "end": self.end.isoformat()},
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """True iff the intervals share any instant; touching bounds do not count."""
    return a.start < b.end and b.start < a.end


@dataclass(frozen=True)
class DailyWindow:
    """Time-of-day range applied to every date of a request."""

    start_time: time
    end_time: time

    def __post_init__(self) -> None:
        if self.start_time >= self.end_time:
            raise InvalidRequestError(
                "Daily window start must be before its end",
                field="window",
                details={
                    "start_time": self.start_time.isoformat(),
                    "end_time": self.end_time.isoformat(),
                },
            )

    @property
    def minutes(self) -> int:
        return int(self.bounds_on(date(2000, 1, 3)).duration.total_seconds() // 60)

    def bounds_on(self, day: date, tzinfo=None) -> TimeInterval:
        return TimeInterval(
            start=datetime.combine(day, self.start_time, tzinfo=tzinfo),
            end=datetime.combine(day, self.end_time, tzinfo=tzinfo),
        )
