"""
SQLAlchemy-backed MeetingRepository.

The compare-and-set is a single ``UPDATE ... WHERE id = :id AND version = :expected``;
zero matched rows means another writer got there first. Participant and busy
interval rows are rewritten inside the same transaction, so a losing writer
leaves nothing behind.
"""

from contextlib import AbstractContextManager
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from services.common.logging_config import get_logger
from services.scheduler.engine import (
    CandidateSlot,
    DailyWindow,
    ParticipantAvailability,
    SlotRequest,
    TimeInterval,
)
from services.scheduler.errors import NotFoundError
from services.scheduler.lifecycle.meeting import InvitationResponse, Meeting
from services.scheduler.lifecycle.repository import MeetingRepository, VersionConflict
from services.scheduler.models import (
    BusyIntervalRecord,
    MeetingRecord,
    ParticipantRecord,
    get_session,
)

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractContextManager]


def _meeting_columns(meeting: Meeting) -> Dict[str, object]:
    request = meeting.slot_request
    slot = meeting.scheduled_slot
    return {
        "organizer_id": meeting.organizer_id,
        "title": meeting.title,
        "description": meeting.description,
        "join_token": meeting.join_token,
        "date_range_start": request.date_range_start,
        "date_range_end": request.date_range_end,
        "window_start": request.window.start_time,
        "window_end": request.window.end_time,
        "duration_minutes": request.duration_minutes,
        "timezone": request.timezone,
        "status": meeting.status,
        "scheduled_date": slot.date if slot else None,
        "scheduled_start": slot.start if slot else None,
        "scheduled_end": slot.end if slot else None,
        "created_at": meeting.created_at,
        "updated_at": meeting.updated_at,
    }


def _child_records(meeting: Meeting) -> Tuple[List[ParticipantRecord], List[BusyIntervalRecord]]:
    participants = []
    busy = [
        BusyIntervalRecord(
            meeting_id=meeting.id,
            participant_id=None,
            start=interval.start,
            end=interval.end,
        )
        for interval in meeting.organizer_busy_intervals
    ]
    for participant_id, invitation in meeting.invitations.items():
        availability = meeting.participants.get(participant_id)
        participants.append(
            ParticipantRecord(
                meeting_id=meeting.id,
                participant_id=participant_id,
                invitation_token=invitation.token,
                status=invitation.status,
                has_responded=bool(availability and availability.has_responded),
                invited_at=invitation.invited_at,
                responded_at=invitation.responded_at,
            )
        )
        if availability is not None:
            busy.extend(
                BusyIntervalRecord(
                    meeting_id=meeting.id,
                    participant_id=participant_id,
                    start=interval.start,
                    end=interval.end,
                )
                for interval in availability.busy_intervals
            )
    return participants, busy


def _to_domain(record: MeetingRecord) -> Meeting:
    busy_by_owner: Dict[Optional[str], List[TimeInterval]] = {}
    for row in record.busy_intervals:
        busy_by_owner.setdefault(row.participant_id, []).append(
            TimeInterval(row.start, row.end)
        )

    participants = {}
    invitations = {}
    for row in record.participants:
        participants[row.participant_id] = ParticipantAvailability(
            participant_id=row.participant_id,
            busy_intervals=tuple(busy_by_owner.get(row.participant_id, ())),
            has_responded=row.has_responded,
        )
        invitations[row.participant_id] = InvitationResponse(
            participant_id=row.participant_id,
            token=row.invitation_token,
            status=row.status,
            responded_at=row.responded_at,
            invited_at=row.invited_at,
        )

    scheduled_slot = None
    if record.scheduled_date is not None:
        scheduled_slot = CandidateSlot(
            date=record.scheduled_date,
            interval=TimeInterval(record.scheduled_start, record.scheduled_end),
        )

    return Meeting(
        id=record.id,
        title=record.title,
        description=record.description,
        join_token=record.join_token,
        organizer_id=record.organizer_id,
        slot_request=SlotRequest(
            date_range_start=record.date_range_start,
            date_range_end=record.date_range_end,
            window=DailyWindow(record.window_start, record.window_end),
            duration_minutes=record.duration_minutes,
            timezone=record.timezone,
        ),
        participants=participants,
        invitations=invitations,
        organizer_busy_intervals=tuple(sorted(busy_by_owner.get(None, ()))),
        status=record.status,
        scheduled_slot=scheduled_slot,
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class SqlMeetingRepository(MeetingRepository):
    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    def add(self, meeting: Meeting) -> Meeting:
        participants, busy = _child_records(meeting)
        with self._session_factory() as session:
            session.add(MeetingRecord(id=meeting.id, version=1, **_meeting_columns(meeting)))
            session.flush()
            session.add_all(participants + busy)
        return replace(meeting, version=1)

    def load(self, meeting_id: str) -> Meeting:
        with self._session_factory() as session:
            return self._load(session, meeting_id)

    def _load(self, session: Session, meeting_id: str) -> Meeting:
        record = session.get(MeetingRecord, meeting_id)
        if record is None:
            raise NotFoundError("Meeting", meeting_id)
        return _to_domain(record)

    def save(self, meeting: Meeting, expected_version: int) -> Meeting:
        new_version = expected_version + 1
        participants, busy = _child_records(meeting)
        with self._session_factory() as session:
            result = session.execute(
                update(MeetingRecord)
                .where(
                    MeetingRecord.id == meeting.id,
                    MeetingRecord.version == expected_version,
                )
                .values(version=new_version, **_meeting_columns(meeting))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if session.get(MeetingRecord, meeting.id) is None:
                    raise NotFoundError("Meeting", meeting.id)
                logger.info(
                    "Meeting version moved before save",
                    meeting_id=meeting.id,
                    expected_version=expected_version,
                )
                raise VersionConflict(meeting.id, expected_version)

            session.execute(
                delete(BusyIntervalRecord).where(BusyIntervalRecord.meeting_id == meeting.id)
            )
            session.execute(
                delete(ParticipantRecord).where(ParticipantRecord.meeting_id == meeting.id)
            )
            session.add_all(participants + busy)
        return replace(meeting, version=new_version)

    def delete(self, meeting_id: str) -> None:
        with self._session_factory() as session:
            record = session.get(MeetingRecord, meeting_id)
            if record is None:
                raise NotFoundError("Meeting", meeting_id)
            session.delete(record)

    def list_for_organizer(self, organizer_id: str) -> List[Meeting]:
        with self._session_factory() as session:
            records = session.scalars(
                select(MeetingRecord)
                .where(MeetingRecord.organizer_id == organizer_id.strip().lower())
                .order_by(MeetingRecord.created_at.desc())
            ).all()
            return [_to_domain(record) for record in records]

    def list_for_participant(self, participant_id: str) -> List[Meeting]:
        with self._session_factory() as session:
            records = session.scalars(
                select(MeetingRecord)
                .join(ParticipantRecord, ParticipantRecord.meeting_id == MeetingRecord.id)
                .where(ParticipantRecord.participant_id == participant_id.strip().lower())
                .order_by(MeetingRecord.created_at.desc())
            ).all()
            return [_to_domain(record) for record in records]

    def find_by_invitation_token(self, token: str) -> Tuple[Meeting, str]:
        with self._session_factory() as session:
            row = session.scalars(
                select(ParticipantRecord).where(ParticipantRecord.invitation_token == token)
            ).first()
            if row is None:
                raise NotFoundError("Invitation", token)
            return self._load(session, row.meeting_id), row.participant_id

    def find_by_join_token(self, join_token: str) -> Meeting:
        with self._session_factory() as session:
            record = session.scalars(
                select(MeetingRecord).where(MeetingRecord.join_token == join_token)
            ).first()
            if record is None:
                raise NotFoundError("Join link", join_token)
            return _to_domain(record)
