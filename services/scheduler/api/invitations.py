"""
Public invitation endpoints.

The invitation token in the path is the participant's only credential, so
these routes take neither an API key nor an X-User-Id header.
"""

from fastapi import APIRouter, Depends

from services.common.logging_config import get_logger, user_id_var
from services.scheduler.api.dependencies import get_meeting_service
from services.scheduler.lifecycle import MeetingService
from services.scheduler.schemas import (
    AvailabilitySubmission,
    InvitationReply,
    PublicInvitation,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("/{token}", response_model=PublicInvitation)
def get_invitation(
    token: str, service: MeetingService = Depends(get_meeting_service)
) -> PublicInvitation:
    meeting, invitation = service.find_invitation(token)
    user_id_var.set(invitation.participant_id)
    return PublicInvitation.from_domain(meeting, invitation)


@router.put("/{token}/availability", response_model=PublicInvitation)
def submit_availability(
    token: str,
    body: AvailabilitySubmission,
    service: MeetingService = Depends(get_meeting_service),
) -> PublicInvitation:
    meeting, invitation = service.find_invitation(token)
    user_id_var.set(invitation.participant_id)
    meeting = service.submit_availability(
        meeting.id,
        invitation.participant_id,
        body.to_intervals(meeting.slot_request.zone),
    )
    return PublicInvitation.from_domain(
        meeting, meeting.invitations[invitation.participant_id]
    )


@router.post("/{token}/respond", response_model=PublicInvitation)
def respond_to_invitation(
    token: str,
    body: InvitationReply,
    service: MeetingService = Depends(get_meeting_service),
) -> PublicInvitation:
    meeting, invitation = service.find_invitation(token)
    user_id_var.set(invitation.participant_id)
    meeting = service.respond(meeting.id, invitation.participant_id, body.response)
    return PublicInvitation.from_domain(
        meeting, meeting.invitations[invitation.participant_id]
    )
