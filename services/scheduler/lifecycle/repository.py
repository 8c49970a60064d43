"""
Meeting storage with optimistic concurrency.

``save`` is a compare-and-set on ``Meeting.version``: it persists the new
state only if the stored version still equals ``expected_version`` and
returns the meeting with its version bumped. Otherwise it raises
VersionConflict and stores nothing.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from services.common.logging_config import get_logger
from services.scheduler.errors import NotFoundError
from services.scheduler.lifecycle.meeting import Meeting, normalize_participant_id

logger = get_logger(__name__)


class VersionConflict(Exception):
    """The stored meeting changed since it was loaded."""

    def __init__(self, meeting_id: str, expected_version: int):
        super().__init__(
            f"Meeting {meeting_id} is no longer at version {expected_version}"
        )
        self.meeting_id = meeting_id
        self.expected_version = expected_version


class MeetingRepository(ABC):
    @abstractmethod
    def add(self, meeting: Meeting) -> Meeting:
        """Store a new meeting and return it at version 1."""

    @abstractmethod
    def load(self, meeting_id: str) -> Meeting:
        """Return the current snapshot or raise NotFoundError."""

    @abstractmethod
    def save(self, meeting: Meeting, expected_version: int) -> Meeting:
        """Compare-and-set. Raises VersionConflict when the stored version moved."""

    @abstractmethod
    def delete(self, meeting_id: str) -> None:
        pass

    @abstractmethod
    def list_for_organizer(self, organizer_id: str) -> List[Meeting]:
        pass

    @abstractmethod
    def list_for_participant(self, participant_id: str) -> List[Meeting]:
        pass

    @abstractmethod
    def find_by_invitation_token(self, token: str) -> Tuple[Meeting, str]:
        """Return the meeting and the invited participant id owning ``token``."""

    @abstractmethod
    def find_by_join_token(self, join_token: str) -> Meeting:
        """Return the meeting whose shared join link carries ``join_token``."""


def _newest_first(meetings: List[Meeting]) -> List[Meeting]:
    return sorted(
        meetings,
        key=lambda m: (m.created_at is not None, m.created_at),
        reverse=True,
    )


class InMemoryMeetingRepository(MeetingRepository):
    """Process-local repository; each meeting has its own lock around compare-and-set."""

    def __init__(self) -> None:
        self._meetings: Dict[str, Meeting] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, meeting_id: str) -> Optional[threading.Lock]:
        with self._registry_lock:
            return self._locks.get(meeting_id)

    def add(self, meeting: Meeting) -> Meeting:
        stored = replace(meeting, version=1)
        with self._registry_lock:
            if meeting.id in self._meetings:
                raise ValueError(f"Meeting {meeting.id} already exists")
            self._locks[meeting.id] = threading.Lock()
            self._meetings[meeting.id] = stored
        return stored

    def load(self, meeting_id: str) -> Meeting:
        meeting = self._meetings.get(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)
        return meeting

    def save(self, meeting: Meeting, expected_version: int) -> Meeting:
        lock = self._lock_for(meeting.id)
        if lock is None:
            raise NotFoundError("Meeting", meeting.id)
        with lock:
            current = self._meetings.get(meeting.id)
            if current is None:
                raise NotFoundError("Meeting", meeting.id)
            if current.version != expected_version:
                raise VersionConflict(meeting.id, expected_version)
            stored = replace(meeting, version=expected_version + 1)
            self._meetings[meeting.id] = stored
        return stored

    def delete(self, meeting_id: str) -> None:
        with self._registry_lock:
            if self._meetings.pop(meeting_id, None) is None:
                raise NotFoundError("Meeting", meeting_id)
            self._locks.pop(meeting_id, None)

    def list_for_organizer(self, organizer_id: str) -> List[Meeting]:
        organizer_id = normalize_participant_id(organizer_id)
        return _newest_first(
            [m for m in list(self._meetings.values()) if m.organizer_id == organizer_id]
        )

    def list_for_participant(self, participant_id: str) -> List[Meeting]:
        participant_id = normalize_participant_id(participant_id)
        return _newest_first(
            [m for m in list(self._meetings.values()) if participant_id in m.invitations]
        )

    def find_by_invitation_token(self, token: str) -> Tuple[Meeting, str]:
        for meeting in list(self._meetings.values()):
            for participant_id, invitation in meeting.invitations.items():
                if invitation.token == token:
                    return meeting, participant_id
        raise NotFoundError("Invitation", token)

    def find_by_join_token(self, join_token: str) -> Meeting:
        for meeting in list(self._meetings.values()):
            if meeting.join_token == join_token:
                return meeting
        raise NotFoundError("Join link", join_token)
