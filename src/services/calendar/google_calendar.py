"""
Google Calendar Sync Service

One-off jobs can be mirrored as events in the user's Google Calendar.
A job with a deadline becomes a timed event starting at the deadline;
a job without one becomes an all-day event on the job date.

The OAuth access token is held only for the session. A 401 from the API
means the session expired: the token is discarded and SessionExpiredError
is raised so the caller can ask the user to sign in again.
"""

from datetime import timedelta
from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog

from src.config import get_settings
from src.config.settings import GoogleCalendarSettings
from src.models.business import Job


logger = structlog.get_logger(__name__)

DEFAULT_DESCRIPTION = "Recorded with Business Manager."


class CalendarError(Exception):
    """Base exception for calendar sync errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CalendarNotConnectedError(CalendarError):
    """No access token is available for this session."""
    pass


class SessionExpiredError(CalendarError):
    """The calendar API rejected the access token (HTTP 401)."""
    pass


class GoogleCalendarService:
    """
    Creates, updates and deletes job events through the Calendar v3 REST API.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        settings: Optional[GoogleCalendarSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().google_calendar
        self._access_token = access_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_connected(self) -> bool:
        return bool(self._access_token)

    def set_token(self, access_token: str) -> None:
        self._access_token = access_token

    def clear_token(self) -> None:
        self._access_token = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.api_base_url.rstrip("/"),
                timeout=httpx.Timeout(self._settings.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _events_path(self, event_id: Optional[str] = None) -> str:
        path = f"/calendars/{quote(self._settings.calendar_id, safe='')}/events"
        if event_id:
            path += f"/{quote(event_id, safe='')}"
        return path

    def build_event(self, job: Job, business_name: str) -> dict[str, Any]:
        """
        Calendar event resource for a job.

        Timed (deadline -> deadline + configured duration) when the job
        has a deadline, otherwise all-day on the job date.
        """
        time_zone = self._settings.time_zone
        event: dict[str, Any] = {
            "summary": f"{job.title} ({business_name})",
            "description": job.description or DEFAULT_DESCRIPTION,
            "start": {"timeZone": time_zone},
            "end": {"timeZone": time_zone},
        }

        if job.deadline:
            end = job.deadline + timedelta(minutes=self._settings.event_duration_minutes)
            event["start"]["dateTime"] = job.deadline.isoformat()
            event["end"]["dateTime"] = end.isoformat()
        else:
            # All-day end dates are exclusive
            event["start"]["date"] = job.date.isoformat()
            event["end"]["date"] = (job.date + timedelta(days=1)).isoformat()

        return event

    async def _send(self, method: str, path: str, payload: Optional[dict] = None) -> httpx.Response:
        if not self._access_token:
            raise CalendarNotConnectedError("No calendar access token for this session")

        client = self._get_client()
        try:
            response = await client.request(
                method,
                path,
                json=payload,
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        except httpx.TransportError as e:
            raise CalendarError(f"Calendar request failed: {e}")

        if response.status_code == 401:
            self.clear_token()
            raise SessionExpiredError(
                "Your calendar session expired. Please sign in again.",
                status_code=401,
            )
        if response.is_error:
            raise CalendarError(
                f"Calendar API error: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def upsert_event(self, job: Job, business_name: str) -> str:
        """
        Create the job's event, or update it when the job already has one.

        Returns:
            The calendar event id
        """
        event = self.build_event(job, business_name)

        if job.google_calendar_event_id:
            await self._send("PUT", self._events_path(job.google_calendar_event_id), event)
            logger.info("calendar_event_updated", job_id=job.id)
            return job.google_calendar_event_id

        response = await self._send("POST", self._events_path(), event)
        event_id = response.json()["id"]
        logger.info("calendar_event_created", job_id=job.id, event_id=event_id)
        return event_id

    async def delete_event(self, event_id: str) -> None:
        """Delete an event; one that is already gone counts as deleted."""
        try:
            await self._send("DELETE", self._events_path(event_id))
        except CalendarError as e:
            if e.status_code in (404, 410):
                logger.info("calendar_event_already_gone", event_id=event_id)
                return
            raise
        logger.info("calendar_event_deleted", event_id=event_id)
