from services.scheduler.lifecycle.meeting import (
    InvitationResponse,
    InvitationStatus,
    Meeting,
    MeetingStatus,
)
from services.scheduler.lifecycle.repository import (
    InMemoryMeetingRepository,
    MeetingRepository,
    VersionConflict,
)
from services.scheduler.lifecycle.service import (
    MeetingAvailability,
    MeetingService,
    ResponseSummary,
)

__all__ = [
    "InMemoryMeetingRepository",
    "InvitationResponse",
    "InvitationStatus",
    "Meeting",
    "MeetingAvailability",
    "MeetingRepository",
    "MeetingService",
    "MeetingStatus",
    "ResponseSummary",
    "VersionConflict",
]
