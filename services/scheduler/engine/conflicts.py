from bisect import bisect_left
from itertools import accumulate
from typing import Iterable, List, Sequence, Union

from services.scheduler.engine.intervals import TimeInterval, overlaps
from services.scheduler.engine.slots import CandidateSlot
from services.scheduler.errors import InvalidRequestError


def _mixed_timezones(exc: TypeError) -> InvalidRequestError:
    return InvalidRequestError(
        "Busy intervals and slots must both be naive or both be timezone-aware",
        details={"error": str(exc)},
    )


class BusyCalendar:
    """
    One calendar owner's busy intervals, indexed for repeated conflict checks.

    Intervals are sorted by start once. A lookup bisects to the last interval
    starting before the probe ends and compares the running maximum end time of
    that prefix with the probe start, so each check is O(log n).
    """

    def __init__(self, busy_intervals: Iterable[TimeInterval]):
        try:
            self._intervals: List[TimeInterval] = sorted(busy_intervals)
        except TypeError as exc:
            raise _mixed_timezones(exc) from exc
        self._starts = [interval.start for interval in self._intervals]
        self._max_ends = list(
            accumulate((interval.end for interval in self._intervals), max)
        )

    def __len__(self) -> int:
        return len(self._intervals)

    @property
    def intervals(self) -> Sequence[TimeInterval]:
        return tuple(self._intervals)

    def conflicts_with(self, interval: TimeInterval) -> bool:
        try:
            candidates = bisect_left(self._starts, interval.end)
            return candidates > 0 and self._max_ends[candidates - 1] > interval.start
        except TypeError as exc:
            raise _mixed_timezones(exc) from exc


def has_conflict(
    slot: CandidateSlot,
    busy_intervals: Union[BusyCalendar, Iterable[TimeInterval]],
) -> bool:
    """True iff any busy interval overlaps the slot. Touching bounds are free."""
    if isinstance(busy_intervals, BusyCalendar):
        return busy_intervals.conflicts_with(slot.interval)
    try:
        return any(overlaps(slot.interval, busy) for busy in busy_intervals)
    except TypeError as exc:
        raise _mixed_timezones(exc) from exc
