"""
Public endpoints behind a meeting's shared join link.

Like the invitation routes, the token in the path is the only credential.
Joining mints a personal invitation and returns its token, which the new
invitee then uses with the invitation routes.
"""

from fastapi import APIRouter, Depends, status

from services.common.logging_config import get_logger, user_id_var
from services.scheduler.api.dependencies import get_meeting_service
from services.scheduler.lifecycle import MeetingService
from services.scheduler.schemas import JoinRequest, MeetingSummary, PublicInvitation
from services.scheduler.settings import get_settings

logger = get_logger(__name__)

router = APIRouter()


@router.get("/{join_token}", response_model=MeetingSummary)
def get_shared_meeting(
    join_token: str, service: MeetingService = Depends(get_meeting_service)
) -> MeetingSummary:
    return MeetingSummary.from_domain(service.find_by_join_token(join_token))


@router.post(
    "/{join_token}",
    response_model=PublicInvitation,
    status_code=status.HTTP_201_CREATED,
)
def join_meeting(
    join_token: str,
    body: JoinRequest,
    service: MeetingService = Depends(get_meeting_service),
) -> PublicInvitation:
    meeting, invitation = service.join_meeting(join_token, str(body.email))
    user_id_var.set(invitation.participant_id)
    return PublicInvitation.from_domain(
        meeting,
        invitation,
        include_token=True,
        join_url_base=get_settings().frontend_url,
    )
