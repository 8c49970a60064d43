from datetime import date, datetime, time, tzinfo
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from services.scheduler.engine import (
    DailyWindow,
    SlotDisplay,
    SlotRequest,
    TimeInterval,
)
from services.scheduler.lifecycle import (
    InvitationResponse,
    InvitationStatus,
    Meeting,
    MeetingAvailability,
    MeetingStatus,
    ResponseSummary,
)


# Requests
class MeetingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    date_range_start: date
    date_range_end: date
    window_start: time = Field(..., description="Daily window start (wall clock)")
    window_end: time = Field(..., description="Daily window end (wall clock)")
    duration_minutes: int = Field(..., description="Slot length in minutes")
    timezone: str = Field("UTC", description="IANA timezone for the daily window")
    participant_emails: List[EmailStr] = Field(default_factory=list)

    def to_slot_request(self) -> SlotRequest:
        return SlotRequest(
            date_range_start=self.date_range_start,
            date_range_end=self.date_range_end,
            window=DailyWindow(self.window_start, self.window_end),
            duration_minutes=self.duration_minutes,
            timezone=self.timezone,
        )


class BusyInterval(BaseModel):
    start: datetime
    end: datetime

    def to_interval(self, tz: Optional[tzinfo] = None) -> TimeInterval:
        """Naive bounds are read as wall clock in ``tz``."""
        start, end = self.start, self.end
        if tz is not None:
            if start.tzinfo is None:
                start = start.replace(tzinfo=tz)
            if end.tzinfo is None:
                end = end.replace(tzinfo=tz)
        return TimeInterval(start, end)

    @classmethod
    def from_interval(cls, interval: TimeInterval) -> "BusyInterval":
        return cls(start=interval.start, end=interval.end)


class AvailabilitySubmission(BaseModel):
    busy_intervals: List[BusyInterval] = Field(default_factory=list)

    def to_intervals(self, tz: Optional[tzinfo] = None) -> List[TimeInterval]:
        return [busy.to_interval(tz) for busy in self.busy_intervals]


class InvitationReply(BaseModel):
    response: str = Field(..., description="accepted or declined")


class ScheduleRequest(BaseModel):
    date: date
    start: time
    end: time


class ParticipantsInvite(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1)


class JoinRequest(BaseModel):
    email: EmailStr


# Responses
def shared_join_url(join_url_base: str, join_token: str) -> str:
    return f"{join_url_base.rstrip('/')}/meetings/share/{join_token}"


class ScheduledSlot(BaseModel):
    date: date
    start: datetime
    end: datetime


class Invitation(BaseModel):
    participant_id: str
    status: InvitationStatus
    has_responded: bool
    invited_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    token: Optional[str] = None
    join_url: Optional[str] = None

    @classmethod
    def from_domain(
        cls,
        meeting: Meeting,
        invitation: InvitationResponse,
        include_token: bool = False,
        join_url_base: Optional[str] = None,
    ) -> "Invitation":
        availability = meeting.participants.get(invitation.participant_id)
        join_url = None
        if include_token and join_url_base:
            join_url = f"{join_url_base.rstrip('/')}/meetings/join/{invitation.token}"
        return cls(
            participant_id=invitation.participant_id,
            status=invitation.status,
            has_responded=bool(availability and availability.has_responded),
            invited_at=invitation.invited_at,
            responded_at=invitation.responded_at,
            token=invitation.token if include_token else None,
            join_url=join_url,
        )


class MeetingSummary(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    organizer_id: str
    status: MeetingStatus
    date_range_start: date
    date_range_end: date
    window_start: time
    window_end: time
    duration_minutes: int
    timezone: Optional[str] = None
    scheduled_slot: Optional[ScheduledSlot] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def fields_from_domain(cls, meeting: Meeting) -> dict:
        request = meeting.slot_request
        slot = meeting.scheduled_slot
        return dict(
            id=meeting.id,
            title=meeting.title,
            description=meeting.description,
            organizer_id=meeting.organizer_id,
            status=meeting.status,
            date_range_start=request.date_range_start,
            date_range_end=request.date_range_end,
            window_start=request.window.start_time,
            window_end=request.window.end_time,
            duration_minutes=request.duration_minutes,
            timezone=request.timezone,
            scheduled_slot=(
                ScheduledSlot(date=slot.date, start=slot.start, end=slot.end)
                if slot
                else None
            ),
            version=meeting.version,
            created_at=meeting.created_at,
            updated_at=meeting.updated_at,
        )

    @classmethod
    def from_domain(cls, meeting: Meeting) -> "MeetingSummary":
        return cls(**cls.fields_from_domain(meeting))


class MeetingDetail(MeetingSummary):
    participants: List[Invitation] = Field(default_factory=list)
    organizer_busy_intervals: List[BusyInterval] = Field(default_factory=list)
    join_token: Optional[str] = None
    join_url: Optional[str] = None

    @classmethod
    def from_domain(
        cls,
        meeting: Meeting,
        include_tokens: bool = True,
        join_url_base: Optional[str] = None,
    ) -> "MeetingDetail":
        return cls(
            **cls.fields_from_domain(meeting),
            participants=[
                Invitation.from_domain(
                    meeting,
                    meeting.invitations[pid],
                    include_token=include_tokens,
                    join_url_base=join_url_base,
                )
                for pid in meeting.participant_ids
            ],
            organizer_busy_intervals=[
                BusyInterval.from_interval(interval)
                for interval in meeting.organizer_busy_intervals
            ],
            join_token=meeting.join_token if include_tokens else None,
            join_url=(
                shared_join_url(join_url_base, meeting.join_token)
                if include_tokens and join_url_base and meeting.join_token
                else None
            ),
        )


class ResponseCounts(BaseModel):
    invited: int
    responded: int
    accepted: int
    declined: int
    pending: int

    @classmethod
    def from_domain(cls, summary: ResponseSummary) -> "ResponseCounts":
        return cls(
            invited=summary.invited,
            responded=summary.responded,
            accepted=summary.accepted,
            declined=summary.declined,
            pending=summary.pending,
        )


class MeetingAvailabilityView(BaseModel):
    meeting_id: str
    status: MeetingStatus
    total_participants: int
    responses: ResponseCounts
    slots: List[SlotDisplay]

    @classmethod
    def from_domain(cls, view: MeetingAvailability) -> "MeetingAvailabilityView":
        return cls(
            meeting_id=view.meeting.id,
            status=view.meeting.status,
            total_participants=len(view.meeting.invitations),
            responses=ResponseCounts.from_domain(view.summary),
            slots=view.displays,
        )


class PublicInvitation(BaseModel):
    """What an invitee sees through their invitation link."""

    meeting: MeetingSummary
    invitation: Invitation
    busy_intervals: List[BusyInterval] = Field(default_factory=list)

    @classmethod
    def from_domain(
        cls,
        meeting: Meeting,
        invitation: InvitationResponse,
        include_token: bool = False,
        join_url_base: Optional[str] = None,
    ) -> "PublicInvitation":
        availability = meeting.participants.get(invitation.participant_id)
        return cls(
            meeting=MeetingSummary.from_domain(meeting),
            invitation=Invitation.from_domain(
                meeting,
                invitation,
                include_token=include_token,
                join_url_base=join_url_base,
            ),
            busy_intervals=[
                BusyInterval.from_interval(interval)
                for interval in (availability.busy_intervals if availability else ())
            ],
        )


class JoinLink(BaseModel):
    """The meeting's shareable link; anyone holding it can add themselves as an invitee."""

    meeting_id: str
    join_token: str
    join_url: str

    @classmethod
    def from_domain(cls, meeting: Meeting, join_url_base: str) -> "JoinLink":
        return cls(
            meeting_id=meeting.id,
            join_token=meeting.join_token,
            join_url=shared_join_url(join_url_base, meeting.join_token),
        )
