"""
Availability engine: slot generation, conflict detection, aggregation and display formatting.

Everything here is pure and synchronous; callers fetch calendars and load
meetings before invoking it.
"""

from services.scheduler.engine.availability import (
    AnnotatedSlot,
    ParticipantAvailability,
    aggregate,
    availability_percentage,
    rank_slots,
)
from services.scheduler.engine.conflicts import BusyCalendar, has_conflict
from services.scheduler.engine.formatting import (
    AvailabilityBand,
    SlotDisplay,
    SlotTone,
    availability_band,
    format_slot,
    format_slots,
)
from services.scheduler.engine.intervals import DailyWindow, TimeInterval, overlaps
from services.scheduler.engine.slots import (
    CandidateSlot,
    SlotRequest,
    find_slot,
    generate_slots,
    iter_slots,
)

__all__ = [
    "AnnotatedSlot",
    "AvailabilityBand",
    "BusyCalendar",
    "CandidateSlot",
    "DailyWindow",
    "ParticipantAvailability",
    "SlotDisplay",
    "SlotRequest",
    "SlotTone",
    "TimeInterval",
    "aggregate",
    "availability_band",
    "availability_percentage",
    "find_slot",
    "format_slot",
    "format_slots",
    "generate_slots",
    "has_conflict",
    "iter_slots",
    "overlaps",
    "rank_slots",
]
