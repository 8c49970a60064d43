"""
Meeting aggregate and its state machine.

A Meeting is immutable; every transition validates the current state and
returns a new Meeting. Persisting the result (and bumping ``version``) is the
repository's job, which is what makes the transitions safe under concurrency.

    pending --submit_availability/respond/invite/remove/join--> pending
    pending --schedule--> scheduled
    pending|scheduled --cancel--> cancelled
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from services.scheduler.engine import (
    AnnotatedSlot,
    CandidateSlot,
    ParticipantAvailability,
    SlotRequest,
    TimeInterval,
    aggregate,
    find_slot,
    generate_slots,
)
from services.scheduler.errors import (
    AlreadyInvitedError,
    ConcurrentScheduleConflict,
    InvalidRequestError,
    NotFoundError,
    NotOrganizerError,
    StaleStateError,
)


class MeetingStatus(str, enum.Enum):
    pending = "pending"
    scheduled = "scheduled"
    cancelled = "cancelled"


class InvitationStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


@dataclass(frozen=True)
class InvitationResponse:
    participant_id: str
    token: str
    status: InvitationStatus = InvitationStatus.pending
    responded_at: Optional[datetime] = None
    invited_at: Optional[datetime] = None


def normalize_participant_id(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class Meeting:
    id: str
    title: str
    organizer_id: str
    slot_request: SlotRequest
    participants: Mapping[str, ParticipantAvailability] = field(default_factory=dict)
    invitations: Mapping[str, InvitationResponse] = field(default_factory=dict)
    organizer_busy_intervals: Tuple[TimeInterval, ...] = ()
    status: MeetingStatus = MeetingStatus.pending
    scheduled_slot: Optional[CandidateSlot] = None
    description: Optional[str] = None
    join_token: Optional[str] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        # Read-only views; transitions build new dicts and go through replace()
        object.__setattr__(self, "participants", MappingProxyType(dict(self.participants)))
        object.__setattr__(self, "invitations", MappingProxyType(dict(self.invitations)))

    @property
    def is_frozen(self) -> bool:
        return self.status is not MeetingStatus.pending

    @property
    def participant_ids(self) -> List[str]:
        return sorted(self.invitations)

    def is_organizer(self, user_id: str) -> bool:
        return normalize_participant_id(user_id) == normalize_participant_id(
            self.organizer_id
        )

    def invitation_for(self, participant_id: str) -> InvitationResponse:
        invitation = self.invitations.get(normalize_participant_id(participant_id))
        if invitation is None:
            raise NotFoundError(
                "Participant", participant_id, details={"meeting_id": self.id}
            )
        return invitation

    def candidate_slots(self) -> List[CandidateSlot]:
        return generate_slots(self.slot_request)

    def annotated_slots(self, *, require_response: bool = False) -> List[AnnotatedSlot]:
        return aggregate(
            self.candidate_slots(),
            [self.participants[pid] for pid in self.participant_ids],
            self.organizer_busy_intervals,
            require_response=require_response,
        )

    # ---- guards -------------------------------------------------------

    def _require_organizer(self, actor_id: str) -> None:
        if not self.is_organizer(actor_id):
            raise NotOrganizerError(self.id, actor_id)

    def _require_pending(self, action: str) -> None:
        if self.status is not MeetingStatus.pending:
            raise StaleStateError(
                f"Cannot {action} a meeting that is {self.status.value}",
                meeting_id=self.id,
                status=self.status.value,
            )

    # ---- transitions --------------------------------------------------

    def submit_availability(
        self, participant_id: str, busy_intervals: Iterable[TimeInterval], now: datetime
    ) -> "Meeting":
        self._require_pending("submit availability for")
        invitation = self.invitation_for(participant_id)
        participants = dict(self.participants)
        participants[invitation.participant_id] = ParticipantAvailability(
            participant_id=invitation.participant_id,
            busy_intervals=tuple(busy_intervals),
            has_responded=True,
        )
        return replace(self, participants=participants, updated_at=now)

    def respond(
        self, participant_id: str, status: Union[InvitationStatus, str], now: datetime
    ) -> "Meeting":
        try:
            status = InvitationStatus(status)
        except ValueError:
            raise InvalidRequestError(
                "Response must be accepted or declined", field="response", value=status
            )
        if status is InvitationStatus.pending:
            raise InvalidRequestError(
                "Response must be accepted or declined", field="response", value=status.value
            )
        self._require_pending("respond to")
        invitation = self.invitation_for(participant_id)
        invitations = dict(self.invitations)
        invitations[invitation.participant_id] = replace(
            invitation, status=status, responded_at=now
        )
        return replace(self, invitations=invitations, updated_at=now)

    def schedule(
        self,
        actor_id: str,
        chosen: Union[AnnotatedSlot, CandidateSlot],
        now: datetime,
    ) -> "Meeting":
        self._require_organizer(actor_id)
        if self.status is MeetingStatus.scheduled:
            raise ConcurrentScheduleConflict(
                "Meeting has already been scheduled",
                meeting_id=self.id,
                status=self.status.value,
            )
        self._require_pending("schedule")

        requested = chosen.slot if isinstance(chosen, AnnotatedSlot) else chosen
        # Never trust the client's copy of the slot; it must still be generated
        slot = find_slot(
            self.slot_request, requested.date, requested.start, requested.end
        )
        if slot is None:
            raise InvalidRequestError(
                "Slot is not one of this meeting's candidate slots",
                field="slot",
                details={
                    "date": requested.date.isoformat(),
                    "start": requested.start.isoformat(),
                    "end": requested.end.isoformat(),
                },
            )
        return replace(
            self, status=MeetingStatus.scheduled, scheduled_slot=slot, updated_at=now
        )

    def cancel(self, actor_id: str, now: datetime) -> "Meeting":
        self._require_organizer(actor_id)
        if self.status is MeetingStatus.cancelled:
            raise StaleStateError(
                "Meeting is already cancelled",
                meeting_id=self.id,
                status=self.status.value,
            )
        return replace(self, status=MeetingStatus.cancelled, updated_at=now)

    def invite(
        self,
        actor_id: str,
        emails: Iterable[str],
        now: datetime,
        token_factory: Callable[[], str],
    ) -> "Meeting":
        """Add new invitees; existing ones are re-invited (reset to pending, availability kept)."""
        self._require_organizer(actor_id)
        self._require_pending("invite participants to")
        participants = dict(self.participants)
        invitations = dict(self.invitations)
        for participant_id in clean_invitee_list(emails, self.organizer_id):
            existing = invitations.get(participant_id)
            if existing is not None:
                invitations[participant_id] = replace(
                    existing,
                    status=InvitationStatus.pending,
                    responded_at=None,
                    invited_at=now,
                )
                continue
            invitations[participant_id] = InvitationResponse(
                participant_id=participant_id, token=token_factory(), invited_at=now
            )
            participants[participant_id] = ParticipantAvailability(participant_id)
        return replace(
            self, participants=participants, invitations=invitations, updated_at=now
        )

    def create_join_link(
        self, actor_id: str, now: datetime, token_factory: Callable[[], str]
    ) -> "Meeting":
        """Mint the meeting's shareable join token. An existing token is kept."""
        self._require_organizer(actor_id)
        self._require_pending("share a join link for")
        if self.join_token is not None:
            return self
        return replace(self, join_token=token_factory(), updated_at=now)

    def join(
        self, email: str, now: datetime, token_factory: Callable[[], str]
    ) -> "Meeting":
        """Add ``email`` as a pending invitee through the shared join link."""
        self._require_pending("join")
        invitees = clean_invitee_list([email], self.organizer_id)
        if not invitees:
            raise InvalidRequestError(
                "A participant email other than the organizer's is required",
                field="email",
                value=email,
            )
        participant_id = invitees[0]
        if participant_id in self.invitations:
            raise AlreadyInvitedError(self.id, participant_id)
        participants = dict(self.participants)
        invitations = dict(self.invitations)
        invitations[participant_id] = InvitationResponse(
            participant_id=participant_id, token=token_factory(), invited_at=now
        )
        participants[participant_id] = ParticipantAvailability(participant_id)
        return replace(
            self, participants=participants, invitations=invitations, updated_at=now
        )

    def remove_participant(
        self, actor_id: str, participant_id: str, now: datetime
    ) -> "Meeting":
        self._require_organizer(actor_id)
        self._require_pending("remove participants from")
        invitation = self.invitation_for(participant_id)
        participants = dict(self.participants)
        invitations = dict(self.invitations)
        participants.pop(invitation.participant_id, None)
        del invitations[invitation.participant_id]
        return replace(
            self, participants=participants, invitations=invitations, updated_at=now
        )

    def with_organizer_busy_intervals(
        self, busy_intervals: Iterable[TimeInterval], now: datetime
    ) -> "Meeting":
        self._require_pending("sync the organizer calendar for")
        return replace(
            self, organizer_busy_intervals=tuple(sorted(busy_intervals)), updated_at=now
        )


def clean_invitee_list(emails: Iterable[str], organizer_id: str) -> List[str]:
    """Normalize, de-duplicate and drop blanks and the organizer, keeping input order."""
    organizer = normalize_participant_id(organizer_id)
    seen: Dict[str, None] = {}
    for email in emails:
        participant_id = normalize_participant_id(email)
        if participant_id and participant_id != organizer:
            seen.setdefault(participant_id, None)
    return list(seen)


def new_meeting(
    meeting_id: str,
    organizer_id: str,
    title: str,
    slot_request: SlotRequest,
    participant_emails: Iterable[str],
    now: datetime,
    token_factory: Callable[[], str],
    description: Optional[str] = None,
) -> Meeting:
    title = (title or "").strip()
    if not title:
        raise InvalidRequestError("Title is required", field="title")
    if not normalize_participant_id(organizer_id):
        raise InvalidRequestError("Organizer is required", field="organizer_id")

    invitees = clean_invitee_list(participant_emails, organizer_id)
    return Meeting(
        id=meeting_id,
        title=title,
        organizer_id=normalize_participant_id(organizer_id),
        slot_request=slot_request,
        participants={pid: ParticipantAvailability(pid) for pid in invitees},
        invitations={
            pid: InvitationResponse(
                participant_id=pid, token=token_factory(), invited_at=now
            )
            for pid in invitees
        },
        description=description,
        created_at=now,
        updated_at=now,
    )
