from threading import Lock
from typing import Optional

from fastapi import Request

from services.common.api_key_auth import (
    APIKeyConfig,
    make_verify_service_authentication,
)
from services.common.http_errors import ValidationError
from services.common.logging_config import get_logger, user_id_var
from services.scheduler.integrations.calendar import OfficeCalendarProvider
from services.scheduler.lifecycle import InMemoryMeetingRepository, MeetingService
from services.scheduler.lifecycle.repository import MeetingRepository
from services.scheduler.settings import get_settings

logger = get_logger(__name__)

# API Key configurations
API_KEY_CONFIGS = {
    "frontend": APIKeyConfig(
        client="frontend",
        service="scheduler",
        permissions=["scheduler:read", "scheduler:write"],
        settings_key="api_frontend_scheduler_key",
    ),
}

verify_api_key_auth = make_verify_service_authentication(API_KEY_CONFIGS, get_settings)


def get_user_id_from_request(request: Request) -> str:
    """
    Extract the acting user from the X-User-Id header.

    The scheduler treats identity as an opaque email string supplied by the
    gateway that authenticated the user.
    """
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        logger.warning(
            "Missing X-User-Id header in request",
            path=request.url.path,
        )
        raise ValidationError("Missing X-User-Id header", field="X-User-Id")
    user_id_var.set(user_id)
    return user_id


_service: Optional[MeetingService] = None
_service_lock = Lock()


def build_repository() -> MeetingRepository:
    backend = get_settings().repository_backend.lower()
    if backend == "memory":
        return InMemoryMeetingRepository()
    if backend == "sql":
        from services.scheduler.lifecycle.sql_repository import SqlMeetingRepository

        return SqlMeetingRepository()
    raise ValueError(f"Unknown repository backend: {backend}")


def get_meeting_service() -> MeetingService:
    """Shared MeetingService built from settings on first use."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                settings = get_settings()
                provider = (
                    OfficeCalendarProvider() if settings.office_service_url else None
                )
                _service = MeetingService(build_repository(), calendar_provider=provider)
    return _service


def reset_meeting_service() -> None:
    global _service
    with _service_lock:
        _service = None
