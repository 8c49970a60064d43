"""
Display formatting for annotated slots.

Pure mapping from engine output to the strings and bands every view shows
(organizer calendar, participant calendar, dashboard). No scheduling rules
live here beyond the percentage formula shared with the aggregator.
"""

from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel

from services.scheduler.engine.availability import AnnotatedSlot

HIGH_AVAILABILITY_RATIO = 0.75
MEDIUM_AVAILABILITY_RATIO = 0.25


class AvailabilityBand(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class SlotTone(str, Enum):
    conflict = "conflict"
    available = "available"
    empty = "empty"


class SlotDisplay(BaseModel):
    date: str
    date_label: str
    start: str
    end: str
    time_label: str
    available_count: int
    total_participants: int
    percentage: int
    percentage_label: str
    availability_label: str
    summary_label: str
    title: str
    band: AvailabilityBand
    tone: SlotTone
    organizer_conflict: bool
    conflict_badge: Optional[str] = None
    highlight_opacity: Optional[float] = None


def availability_band(ratio: float) -> AvailabilityBand:
    if ratio >= HIGH_AVAILABILITY_RATIO:
        return AvailabilityBand.high
    if ratio >= MEDIUM_AVAILABILITY_RATIO:
        return AvailabilityBand.medium
    return AvailabilityBand.low


def highlight_opacity(ratio: float) -> float:
    """Heat colouring strength: 0.3 baseline plus up to 0.7 scaled by availability."""
    return round(0.3 + min(ratio * 0.7, 0.7), 3)


def format_date_label(item: AnnotatedSlot) -> str:
    day = item.slot.date
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def format_time_label(item: AnnotatedSlot) -> str:
    return f"{item.slot.start:%H:%M} - {item.slot.end:%H:%M}"


def format_slot(item: AnnotatedSlot) -> SlotDisplay:
    available = item.available_count
    total = item.total_participants
    percentage = item.percentage
    availability_label = f"{available} of {total} available"

    if item.organizer_conflict:
        tone = SlotTone.conflict
        title = f"Conflict ({available} available)"
    elif available > 0:
        tone = SlotTone.available
        title = f"{available} available"
    else:
        tone = SlotTone.empty
        title = f"{available} available"

    return SlotDisplay(
        date=item.slot.date.isoformat(),
        date_label=format_date_label(item),
        start=item.slot.start.isoformat(),
        end=item.slot.end.isoformat(),
        time_label=format_time_label(item),
        available_count=available,
        total_participants=total,
        percentage=percentage,
        percentage_label=f"{percentage}%",
        availability_label=availability_label,
        summary_label=f"{availability_label} ({percentage}%)",
        title=title,
        band=availability_band(item.ratio),
        tone=tone,
        organizer_conflict=item.organizer_conflict,
        conflict_badge="Conflict with your calendar" if item.organizer_conflict else None,
        highlight_opacity=highlight_opacity(item.ratio) if tone is SlotTone.available else None,
    )


def format_slots(annotated: Iterable[AnnotatedSlot]) -> List[SlotDisplay]:
    return [format_slot(item) for item in annotated]
