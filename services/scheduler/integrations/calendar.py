"""
Calendar provider boundary.

Providers return free/busy information only. Whatever shape the backend
uses for events is normalized here into TimeIntervals so the engine never
sees provider payloads.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Dict, Iterable, List, Optional

import httpx

from services.common.http_errors import ErrorCode, ProviderError
from services.common.logging_config import get_logger, request_id_var
from services.scheduler.engine import TimeInterval
from services.scheduler.errors import InvalidRequestError
from services.scheduler.settings import get_settings

logger = get_logger(__name__)

TRANSPARENT_VALUES = {"free", "transparent"}


class CalendarProvider(ABC):
    @abstractmethod
    async def get_busy_intervals(
        self,
        owner_id: str,
        range_start: datetime,
        range_end: datetime,
        tz: Optional[tzinfo] = None,
    ) -> List[TimeInterval]:
        """Busy time of ``owner_id`` between the bounds. ``tz`` anchors all-day events."""


def parse_provider_datetime(value: str, tz: Optional[tzinfo] = None) -> datetime:
    """Parse an ISO-8601 string; a trailing ``Z`` means UTC and naive values take ``tz``."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None and tz is not None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _event_bound(event: Dict[str, Any], key: str) -> Any:
    # Google-style {"start": {"dateTime"|"date": ...}} or flat start_time/end_time
    value = event.get(key)
    if isinstance(value, dict):
        return value.get("dateTime") or value.get("date")
    return value if value is not None else event.get(f"{key}_time")


def event_to_interval(
    event: Dict[str, Any], tz: Optional[tzinfo] = None
) -> Optional[TimeInterval]:
    """
    Normalize one provider event into a busy interval.

    All-day events (a bare ``date`` or ``all_day: true``) cover whole days in
    ``tz`` with an exclusive end date. Cancelled or transparent events, and
    events with an unusable time range, yield None.
    """
    if str(event.get("status", "")).lower() == "cancelled":
        return None
    show_as = event.get("show_as") or event.get("transparency")
    if show_as and str(show_as).lower() in TRANSPARENT_VALUES:
        return None

    raw_start = _event_bound(event, "start")
    raw_end = _event_bound(event, "end")
    if not raw_start or not raw_end:
        return None

    all_day = bool(event.get("all_day")) or (
        len(str(raw_start)) == 10 and len(str(raw_end)) == 10
    )
    if all_day:
        start_day = date.fromisoformat(str(raw_start)[:10])
        end_day = date.fromisoformat(str(raw_end)[:10])
        if end_day <= start_day:
            end_day = start_day + timedelta(days=1)
        start = datetime.combine(start_day, time.min, tzinfo=tz)
        end = datetime.combine(end_day, time.min, tzinfo=tz)
    else:
        start = parse_provider_datetime(str(raw_start), tz)
        end = parse_provider_datetime(str(raw_end), tz)

    if start >= end:
        return None
    return TimeInterval(start, end)


def events_to_intervals(
    events: Iterable[Dict[str, Any]], tz: Optional[tzinfo] = None
) -> List[TimeInterval]:
    intervals = []
    for event in events:
        interval = event_to_interval(event, tz)
        if interval is not None:
            intervals.append(interval)
    return sorted(intervals)


class OfficeCalendarProvider(CalendarProvider):
    """Reads busy time from the office service's unified calendar API."""

    provider_name = "office"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.office_service_url or "").rstrip("/")
        self.api_key = api_key or settings.api_scheduler_office_key
        self.timeout = timeout if timeout is not None else settings.calendar_timeout_seconds

    def _headers(self, owner_id: str) -> Dict[str, str]:
        headers = {"X-User-Id": owner_id}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        # Propagate request ID for distributed tracing
        request_id = request_id_var.get()
        if request_id and request_id != "uninitialized":
            headers["X-Request-Id"] = request_id
        return headers

    async def get_busy_intervals(
        self,
        owner_id: str,
        range_start: datetime,
        range_end: datetime,
        tz: Optional[tzinfo] = None,
    ) -> List[TimeInterval]:
        if not self.base_url:
            raise ProviderError(
                "Calendar provider is not configured",
                provider=self.provider_name,
                code=ErrorCode.PROVIDER_UNAVAILABLE,
                status_code=503,
            )

        url = f"{self.base_url}/v1/calendar/events"
        params = {
            "start_date": range_start.isoformat(),
            "end_date": range_end.isoformat(),
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.get(url, headers=self._headers(owner_id), params=params)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.warning(
                    "HTTP error from calendar provider",
                    owner_id=owner_id,
                    status_code=e.response.status_code,
                )
                raise ProviderError(
                    f"Calendar provider returned {e.response.status_code}",
                    provider=self.provider_name,
                    response_body=e.response.text,
                ) from e
            except httpx.RequestError as e:
                logger.error(
                    "Calendar provider unreachable",
                    owner_id=owner_id,
                    error=str(e),
                )
                raise ProviderError(
                    "Calendar provider is unavailable",
                    provider=self.provider_name,
                    details={"error": str(e)},
                    code=ErrorCode.PROVIDER_UNAVAILABLE,
                    status_code=503,
                ) from e

        try:
            payload = resp.json()
            data = payload.get("data", payload) if isinstance(payload, dict) else payload
            events = data.get("events", []) if isinstance(data, dict) else data
            intervals = events_to_intervals(events, tz)
        except (ValueError, TypeError, InvalidRequestError) as e:
            raise ProviderError(
                "Calendar provider returned malformed events",
                provider=self.provider_name,
                details={"error": str(e)},
            ) from e
        logger.info(
            "Fetched busy intervals",
            owner_id=owner_id,
            event_count=len(events),
            busy_count=len(intervals),
        )
        return intervals
