"""
Scheduler service request and response schemas.
"""

from services.scheduler.schemas.meeting import (
    AvailabilitySubmission,
    BusyInterval,
    Invitation,
    InvitationReply,
    JoinLink,
    JoinRequest,
    MeetingAvailabilityView,
    MeetingCreate,
    MeetingDetail,
    MeetingSummary,
    ParticipantsInvite,
    PublicInvitation,
    ResponseCounts,
    ScheduledSlot,
    ScheduleRequest,
)

__all__ = [
    "AvailabilitySubmission",
    "BusyInterval",
    "Invitation",
    "InvitationReply",
    "JoinLink",
    "JoinRequest",
    "MeetingAvailabilityView",
    "MeetingCreate",
    "MeetingDetail",
    "MeetingSummary",
    "ParticipantsInvite",
    "PublicInvitation",
    "ResponseCounts",
    "ScheduleRequest",
    "ScheduledSlot",
]
