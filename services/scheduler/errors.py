"""
Scheduler error kinds.

All of them are HuddleAPIException subclasses so the shared FastAPI handlers
render them; the engine and lifecycle raise them directly.
"""

from typing import Any, Dict, Optional

from services.common.http_errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class InvalidRequestError(ValidationError):
    """A malformed slot request or interval, rejected before any processing."""


class StaleStateError(ConflictError):
    """An operation was attempted against a meeting no longer in the required state."""

    def __init__(
        self,
        message: str,
        meeting_id: Optional[str] = None,
        status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.STALE_STATE,
        error_type: str = "stale_state",
    ):
        stale_details = dict(details or {})
        if meeting_id:
            stale_details["meeting_id"] = meeting_id
        if status:
            stale_details["status"] = status
        super().__init__(
            message=message,
            details=stale_details,
            error_type=error_type,
            code=code,
        )
        self.meeting_id = meeting_id
        self.status = status


class ConcurrentScheduleConflict(StaleStateError):
    """Lost a scheduling race. Reload the meeting and decide again."""

    def __init__(
        self,
        message: str,
        meeting_id: Optional[str] = None,
        status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            meeting_id=meeting_id,
            status=status,
            details=details,
            code=ErrorCode.SCHEDULE_CONFLICT,
            error_type="schedule_conflict",
        )


class NotOrganizerError(PermissionDeniedError):
    def __init__(self, meeting_id: str, actor_id: str):
        super().__init__(
            message="Only the organizer can perform this action",
            details={"meeting_id": meeting_id, "actor_id": actor_id},
        )


class NotMemberError(PermissionDeniedError):
    """The caller is neither the organizer nor an invitee of the meeting."""

    def __init__(self, meeting_id: str, user_id: str):
        super().__init__(
            message="Not a member of this meeting",
            details={"meeting_id": meeting_id, "user_id": user_id},
        )


class AlreadyInvitedError(ConflictError):
    """Joining through the shared link with an email that already holds an invitation."""

    def __init__(self, meeting_id: str, participant_id: str):
        super().__init__(
            message="Already invited; use the personal invitation link instead",
            details={"meeting_id": meeting_id, "participant_id": participant_id},
            error_type="already_invited",
            code=ErrorCode.ALREADY_EXISTS,
        )


__all__ = [
    "AlreadyInvitedError",
    "ConcurrentScheduleConflict",
    "InvalidRequestError",
    "NotFoundError",
    "NotMemberError",
    "NotOrganizerError",
    "StaleStateError",
]
