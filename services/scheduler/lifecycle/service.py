"""
Meeting service: loads a meeting, applies one transition, and saves it with
compare-and-set.

A transition that loses a version race is re-applied to the fresh snapshot,
which re-runs its state checks. A schedule that raced an availability
submission therefore still lands; one that raced another schedule fails with
ConcurrentScheduleConflict and one that raced a cancel fails with
StaleStateError.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Callable, Iterable, List, Optional, Tuple, Union
from uuid import uuid4

from services.common.logging_config import get_logger
from services.scheduler.engine import (
    AnnotatedSlot,
    CandidateSlot,
    SlotDisplay,
    SlotRequest,
    TimeInterval,
    format_slots,
    rank_slots,
)
from services.scheduler.errors import (
    InvalidRequestError,
    NotMemberError,
    NotOrganizerError,
    StaleStateError,
)
from services.scheduler.integrations.calendar import CalendarProvider
from services.scheduler.lifecycle.meeting import (
    InvitationResponse,
    InvitationStatus,
    Meeting,
    new_meeting,
    normalize_participant_id,
)
from services.scheduler.lifecycle.repository import MeetingRepository, VersionConflict

logger = get_logger(__name__)

MAX_UPDATE_ATTEMPTS = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_token() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class ResponseSummary:
    invited: int
    responded: int
    accepted: int
    declined: int
    pending: int


@dataclass(frozen=True)
class MeetingAvailability:
    meeting: Meeting
    annotated: List[AnnotatedSlot]
    ranked: List[AnnotatedSlot]
    displays: List[SlotDisplay]
    summary: ResponseSummary


def summarize_responses(meeting: Meeting) -> ResponseSummary:
    statuses = [invitation.status for invitation in meeting.invitations.values()]
    return ResponseSummary(
        invited=len(statuses),
        responded=sum(1 for p in meeting.participants.values() if p.has_responded),
        accepted=statuses.count(InvitationStatus.accepted),
        declined=statuses.count(InvitationStatus.declined),
        pending=statuses.count(InvitationStatus.pending),
    )


class MeetingService:
    def __init__(
        self,
        repository: MeetingRepository,
        calendar_provider: Optional[CalendarProvider] = None,
        clock: Callable[[], datetime] = utcnow,
        token_factory: Callable[[], str] = new_token,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ):
        self.repository = repository
        self.calendar_provider = calendar_provider
        self.clock = clock
        self.token_factory = token_factory
        self.id_factory = id_factory

    # ---- queries ------------------------------------------------------

    def get_meeting(self, meeting_id: str) -> Meeting:
        return self.repository.load(meeting_id)

    def get_meeting_for_user(self, meeting_id: str, user_id: str) -> Meeting:
        """Load a meeting visible to ``user_id`` as organizer or invitee."""
        meeting = self.repository.load(meeting_id)
        if not meeting.is_organizer(user_id) and (
            normalize_participant_id(user_id) not in meeting.invitations
        ):
            raise NotMemberError(meeting_id, user_id)
        return meeting

    def list_meetings(self, user_id: str, role: str = "organizer") -> List[Meeting]:
        if role == "organizer":
            return self.repository.list_for_organizer(user_id)
        if role == "participant":
            return self.repository.list_for_participant(user_id)
        raise InvalidRequestError(
            "Role must be organizer or participant", field="role", value=role
        )

    def find_invitation(self, token: str) -> Tuple[Meeting, InvitationResponse]:
        meeting, participant_id = self.repository.find_by_invitation_token(token)
        return meeting, meeting.invitations[participant_id]

    def find_by_join_token(self, join_token: str) -> Meeting:
        return self.repository.find_by_join_token(join_token)

    def availability(
        self, meeting_id: str, *, require_response: bool = False
    ) -> MeetingAvailability:
        meeting = self.repository.load(meeting_id)
        return self.availability_for(meeting, require_response=require_response)

    def availability_for(
        self, meeting: Meeting, *, require_response: bool = False
    ) -> MeetingAvailability:
        annotated = meeting.annotated_slots(require_response=require_response)
        ranked = rank_slots(annotated)
        return MeetingAvailability(
            meeting=meeting,
            annotated=annotated,
            ranked=ranked,
            displays=format_slots(ranked),
            summary=summarize_responses(meeting),
        )

    # ---- commands -----------------------------------------------------

    def create_meeting(
        self,
        organizer_id: str,
        title: str,
        slot_request: SlotRequest,
        participant_emails: Iterable[str] = (),
        description: Optional[str] = None,
    ) -> Meeting:
        meeting = new_meeting(
            meeting_id=self.id_factory(),
            organizer_id=organizer_id,
            title=title,
            slot_request=slot_request,
            participant_emails=participant_emails,
            now=self.clock(),
            token_factory=self.token_factory,
            description=description,
        )
        stored = self.repository.add(meeting)
        logger.info(
            "Created meeting",
            meeting_id=stored.id,
            organizer_id=stored.organizer_id,
            participant_count=len(stored.invitations),
        )
        return stored

    def submit_availability(
        self,
        meeting_id: str,
        participant_id: str,
        busy_intervals: Iterable[TimeInterval],
    ) -> Meeting:
        busy = tuple(busy_intervals)
        meeting = self._apply(
            meeting_id,
            lambda m: m.submit_availability(participant_id, busy, self.clock()),
        )
        logger.info(
            "Availability submitted",
            meeting_id=meeting_id,
            participant_id=normalize_participant_id(participant_id),
            busy_count=len(busy),
        )
        return meeting

    def respond(
        self,
        meeting_id: str,
        participant_id: str,
        status: Union[InvitationStatus, str],
    ) -> Meeting:
        meeting = self._apply(
            meeting_id, lambda m: m.respond(participant_id, status, self.clock())
        )
        logger.info(
            "Invitation response recorded",
            meeting_id=meeting_id,
            participant_id=normalize_participant_id(participant_id),
            response=meeting.invitation_for(participant_id).status.value,
        )
        return meeting

    def schedule(
        self,
        meeting_id: str,
        actor_id: str,
        chosen: Union[AnnotatedSlot, CandidateSlot],
    ) -> Meeting:
        stored = self._apply(
            meeting_id, lambda m: m.schedule(actor_id, chosen, self.clock())
        )
        logger.info(
            "Meeting scheduled",
            meeting_id=meeting_id,
            date=stored.scheduled_slot.date.isoformat(),
            start=stored.scheduled_slot.start.isoformat(),
            end=stored.scheduled_slot.end.isoformat(),
            version=stored.version,
        )
        return stored

    def schedule_at(
        self, meeting_id: str, actor_id: str, day: date, start: time, end: time
    ) -> Meeting:
        """Schedule by wall-clock times in the meeting's timezone."""
        meeting = self.repository.load(meeting_id)
        zone = meeting.slot_request.zone
        slot = CandidateSlot(
            date=day,
            interval=TimeInterval(
                datetime.combine(day, start, tzinfo=zone),
                datetime.combine(day, end, tzinfo=zone),
            ),
        )
        return self.schedule(meeting_id, actor_id, slot)

    def cancel(self, meeting_id: str, actor_id: str) -> Meeting:
        stored = self._apply(
            meeting_id, lambda m: m.cancel(actor_id, self.clock())
        )
        logger.info("Meeting cancelled", meeting_id=meeting_id, version=stored.version)
        return stored

    def invite_participants(
        self, meeting_id: str, actor_id: str, emails: Iterable[str]
    ) -> Meeting:
        emails = list(emails)
        stored = self._apply(
            meeting_id,
            lambda m: m.invite(actor_id, emails, self.clock(), self.token_factory),
        )
        logger.info(
            "Participants invited",
            meeting_id=meeting_id,
            requested=len(emails),
            participant_count=len(stored.invitations),
        )
        return stored

    def remove_participant(
        self, meeting_id: str, actor_id: str, participant_id: str
    ) -> Meeting:
        stored = self._apply(
            meeting_id,
            lambda m: m.remove_participant(actor_id, participant_id, self.clock()),
        )
        logger.info(
            "Participant removed",
            meeting_id=meeting_id,
            participant_id=normalize_participant_id(participant_id),
        )
        return stored

    def create_join_link(self, meeting_id: str, actor_id: str) -> Meeting:
        """Return the meeting with its shareable join token, minting one on first use."""
        stored = self._apply(
            meeting_id,
            lambda m: m.create_join_link(actor_id, self.clock(), self.token_factory),
        )
        logger.info("Join link ready", meeting_id=meeting_id, version=stored.version)
        return stored

    def join_meeting(
        self, join_token: str, email: str
    ) -> Tuple[Meeting, InvitationResponse]:
        """Add ``email`` as an invitee of the meeting behind ``join_token``."""
        meeting = self.repository.find_by_join_token(join_token)
        stored = self._apply(
            meeting.id, lambda m: m.join(email, self.clock(), self.token_factory)
        )
        invitation = stored.invitation_for(email)
        logger.info(
            "Participant joined through shared link",
            meeting_id=meeting.id,
            participant_id=invitation.participant_id,
        )
        return stored, invitation

    def delete_meeting(self, meeting_id: str, actor_id: str) -> None:
        meeting = self.repository.load(meeting_id)
        if not meeting.is_organizer(actor_id):
            raise NotOrganizerError(meeting_id, actor_id)
        self.repository.delete(meeting_id)
        logger.info("Meeting deleted", meeting_id=meeting_id)

    async def sync_organizer_calendar(self, meeting_id: str, actor_id: str) -> Meeting:
        """Fetch the organizer's busy time for the meeting's range and store it on the meeting."""
        if self.calendar_provider is None:
            raise InvalidRequestError("No calendar provider is configured")

        meeting = self.repository.load(meeting_id)
        if not meeting.is_organizer(actor_id):
            raise NotOrganizerError(meeting_id, actor_id)
        request = meeting.slot_request
        zone = request.zone
        range_start = datetime.combine(request.date_range_start, time.min, tzinfo=zone)
        range_end = datetime.combine(request.date_range_end, time.max, tzinfo=zone)

        busy = await self.calendar_provider.get_busy_intervals(
            meeting.organizer_id, range_start, range_end, zone
        )
        stored = self._apply(
            meeting_id,
            lambda m: m.with_organizer_busy_intervals(busy, self.clock()),
        )
        logger.info(
            "Organizer calendar synced",
            meeting_id=meeting_id,
            busy_count=len(busy),
        )
        return stored

    # ---- helpers ------------------------------------------------------

    def _apply(
        self, meeting_id: str, transition: Callable[[Meeting], Meeting]
    ) -> Meeting:
        for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
            current = self.repository.load(meeting_id)
            try:
                updated = transition(current)
            except StaleStateError as e:
                logger.warning(
                    "Meeting update rejected",
                    meeting_id=meeting_id,
                    status=current.status.value,
                    error=e.message,
                )
                raise
            if updated is current:
                return current
            try:
                return self.repository.save(updated, current.version)
            except VersionConflict:
                logger.info(
                    "Meeting update raced, re-applying",
                    meeting_id=meeting_id,
                    attempt=attempt,
                )
        latest = self.repository.load(meeting_id)
        raise StaleStateError(
            "Meeting is changing too quickly; reload and try again",
            meeting_id=meeting_id,
            status=latest.status.value,
        )

