"""
Per-slot availability aggregation.

For each candidate slot the aggregator counts the invited participants whose
busy intervals leave the slot free and flags whether the organizer's own
calendar conflicts. The organizer is evaluated like any participant but never
enters the ``total_participants`` denominator.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Sequence, Tuple

from services.common.logging_config import get_logger
from services.scheduler.engine.conflicts import BusyCalendar, has_conflict
from services.scheduler.engine.intervals import TimeInterval
from services.scheduler.engine.slots import CandidateSlot

logger = get_logger(__name__)


@dataclass(frozen=True)
class ParticipantAvailability:
    participant_id: str
    busy_intervals: Tuple[TimeInterval, ...] = ()
    has_responded: bool = False

    def __post_init__(self) -> None:
        # Keep the stored sequence ordered by start regardless of input order
        object.__setattr__(self, "busy_intervals", tuple(sorted(self.busy_intervals)))


@dataclass(frozen=True)
class AnnotatedSlot:
    slot: CandidateSlot
    available_count: int
    total_participants: int
    organizer_conflict: bool
    available_participant_ids: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def ratio(self) -> float:
        if self.total_participants == 0:
            return 0.0
        return self.available_count / self.total_participants

    @property
    def percentage(self) -> int:
        return availability_percentage(self.available_count, self.total_participants)


def availability_percentage(available_count: int, total_participants: int) -> int:
    """``round(available / total * 100)`` with halves rounded up; 0 when nobody is invited."""
    if total_participants <= 0:
        return 0
    exact = Decimal(available_count) * 100 / Decimal(total_participants)
    return int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def aggregate(
    slots: Iterable[CandidateSlot],
    participants: Sequence[ParticipantAvailability],
    organizer_busy_intervals: Iterable[TimeInterval] = (),
    *,
    require_response: bool = False,
) -> List[AnnotatedSlot]:
    """
    Annotate every slot with how many invited participants are free.

    Args:
        slots: Candidate slots, annotated in the order given
        participants: The invited participants (the organizer is not one of them)
        organizer_busy_intervals: The organizer's busy time, used for ``organizer_conflict``
        require_response: When True, participants who have not submitted
            availability are never counted as free

    Returns:
        A freshly built AnnotatedSlot per input slot
    """
    calendars = [
        (participant, BusyCalendar(participant.busy_intervals))
        for participant in participants
    ]
    organizer_calendar = BusyCalendar(organizer_busy_intervals)
    total = len(calendars)

    annotated = []
    for slot in slots:
        free_ids = tuple(
            participant.participant_id
            for participant, calendar in calendars
            if (participant.has_responded or not require_response)
            and not has_conflict(slot, calendar)
        )
        annotated.append(
            AnnotatedSlot(
                slot=slot,
                available_count=len(free_ids),
                total_participants=total,
                organizer_conflict=has_conflict(slot, organizer_calendar),
                available_participant_ids=free_ids,
            )
        )

    logger.debug(
        "Aggregated slot availability",
        slot_count=len(annotated),
        participant_count=total,
        organizer_busy_count=len(organizer_calendar),
    )
    return annotated


def rank_slots(annotated: Iterable[AnnotatedSlot]) -> List[AnnotatedSlot]:
    """Most available first, then earliest date, then earliest start."""
    return sorted(
        annotated,
        key=lambda item: (-item.available_count, item.slot.date, item.slot.start),
    )
