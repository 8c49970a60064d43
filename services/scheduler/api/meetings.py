from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response, status

from services.common.logging_config import get_logger
from services.scheduler.api.dependencies import (
    get_meeting_service,
    get_user_id_from_request,
    verify_api_key_auth,
)
from services.scheduler.errors import NotOrganizerError
from services.scheduler.lifecycle import Meeting, MeetingService
from services.scheduler.schemas import (
    JoinLink,
    MeetingAvailabilityView,
    MeetingCreate,
    MeetingDetail,
    MeetingSummary,
    ParticipantsInvite,
    ScheduleRequest,
)
from services.scheduler.settings import get_settings

logger = get_logger(__name__)

router = APIRouter()


def _detail(meeting: Meeting, include_tokens: bool = True) -> MeetingDetail:
    return MeetingDetail.from_domain(
        meeting,
        include_tokens=include_tokens,
        join_url_base=get_settings().frontend_url,
    )


@router.post("/", response_model=MeetingDetail, status_code=status.HTTP_201_CREATED)
@router.post("", response_model=MeetingDetail, status_code=status.HTTP_201_CREATED)
def create_meeting(
    body: MeetingCreate,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingDetail:
    user_id = get_user_id_from_request(request)
    meeting = service.create_meeting(
        organizer_id=user_id,
        title=body.title,
        slot_request=body.to_slot_request(),
        participant_emails=[str(email) for email in body.participant_emails],
        description=body.description,
    )
    return _detail(meeting)


@router.get("/", response_model=List[MeetingSummary])
@router.get("", response_model=List[MeetingSummary])
def list_meetings(
    request: Request,
    role: str = Query("organizer", description="organizer or participant"),
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> List[MeetingSummary]:
    user_id = get_user_id_from_request(request)
    meetings = service.list_meetings(user_id, role=role)
    logger.info("Listing meetings", role=role, total_meetings=len(meetings))
    return [MeetingSummary.from_domain(meeting) for meeting in meetings]


@router.get("/{meeting_id}", response_model=MeetingDetail)
def get_meeting(
    meeting_id: str,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingDetail:
    user_id = get_user_id_from_request(request)
    meeting = service.get_meeting_for_user(meeting_id, user_id)
    # Invitees see the meeting but not the other invitees' tokens
    return _detail(
        meeting, include_tokens=meeting.is_organizer(user_id)
    )


@router.delete("/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_meeting(
    meeting_id: str,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> Response:
    user_id = get_user_id_from_request(request)
    service.delete_meeting(meeting_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{meeting_id}/availability", response_model=MeetingAvailabilityView)
def get_availability(
    meeting_id: str,
    request: Request,
    require_response: bool = Query(
        False, description="Count only participants who submitted availability"
    ),
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingAvailabilityView:
    user_id = get_user_id_from_request(request)
    meeting = service.get_meeting(meeting_id)
    if not meeting.is_organizer(user_id):
        raise NotOrganizerError(meeting_id, user_id)
    view = service.availability_for(meeting, require_response=require_response)
    return MeetingAvailabilityView.from_domain(view)


@router.post("/{meeting_id}/schedule", response_model=MeetingDetail)
def schedule_meeting(
    meeting_id: str,
    body: ScheduleRequest,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingDetail:
    user_id = get_user_id_from_request(request)
    meeting = service.schedule_at(meeting_id, user_id, body.date, body.start, body.end)
    return _detail(meeting)


@router.post("/{meeting_id}/cancel", response_model=MeetingDetail)
def cancel_meeting(
    meeting_id: str,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingDetail:
    user_id = get_user_id_from_request(request)
    return _detail(service.cancel(meeting_id, user_id))


@router.post("/{meeting_id}/invitation", response_model=JoinLink)
def create_join_link(
    meeting_id: str,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> JoinLink:
    user_id = get_user_id_from_request(request)
    meeting = service.create_join_link(meeting_id, user_id)
    return JoinLink.from_domain(meeting, get_settings().frontend_url)


@router.post("/{meeting_id}/participants", response_model=MeetingDetail)
def invite_participants(
    meeting_id: str,
    body: ParticipantsInvite,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingDetail:
    user_id = get_user_id_from_request(request)
    meeting = service.invite_participants(
        meeting_id, user_id, [str(email) for email in body.emails]
    )
    return _detail(meeting)


@router.delete("/{meeting_id}/participants/{email}", response_model=MeetingDetail)
def remove_participant(
    meeting_id: str,
    email: str,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingDetail:
    user_id = get_user_id_from_request(request)
    return _detail(
        service.remove_participant(meeting_id, user_id, email)
    )


@router.post("/{meeting_id}/organizer-calendar/sync", response_model=MeetingDetail)
async def sync_organizer_calendar(
    meeting_id: str,
    request: Request,
    service_name: str = Depends(verify_api_key_auth),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingDetail:
    user_id = get_user_id_from_request(request)
    meeting = await service.sync_organizer_calendar(meeting_id, user_id)
    return _detail(meeting)
