"""
Google Calendar client.

Thin async wrapper over the Calendar v3 API used for availability and
tentative bookings:
- freebusy.query  - busy intervals for the clinic calendar
- events.insert   - create a tentative appointment

The google-api-python-client is synchronous, so every call runs in a
worker thread.
"""

import asyncio
import base64
import json
import logging
from datetime import datetime
from typing import Any, Optional

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from app.config import settings

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]


class CalendarClientError(Exception):
    """Calendar API error."""
    pass


def decode_service_account(encoded: str) -> dict:
    """
    Decode a base64-encoded service-account JSON key.

    Raises:
        CalendarClientError: If the value is not valid base64 JSON
    """
    try:
        return json.loads(base64.b64decode(encoded).decode("utf-8"))
    except ValueError as e:
        raise CalendarClientError(f"Invalid service account key: {e}") from e


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as returned by the Calendar API."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


class GoogleCalendarClient:
    """
    Google Calendar v3 client authenticated with a service account.

    Raises CalendarClientError for every failure; callers own the fallback.
    """

    def __init__(
        self,
        calendar_id: Optional[str] = None,
        service_account_info: Optional[dict] = None,
        timezone: Optional[str] = None,
        service: Any = None,
    ):
        """Initialize client.

        Args:
            calendar_id: Calendar to query and write (defaults to settings)
            service_account_info: Decoded service-account key (defaults to settings)
            timezone: IANA timezone for created events (defaults to settings)
            service: Prebuilt API resource (for testing)
        """
        self.calendar_id = calendar_id or settings.calendar_id
        self.timezone = timezone or settings.calendar_timezone
        self._service_account_info = service_account_info
        self._service = service

    def _get_service(self) -> Any:
        """Get or build the Calendar API resource."""
        if self._service is not None:
            return self._service

        if not self.calendar_id:
            raise CalendarClientError("Calendar not configured: CALENDAR_ID missing")

        info = self._service_account_info
        if info is None:
            if not settings.google_service_account_json_b64:
                raise CalendarClientError(
                    "Calendar not configured: GOOGLE_SERVICE_ACCOUNT_JSON_B64 missing"
                )
            info = decode_service_account(settings.google_service_account_json_b64)

        try:
            credentials = service_account.Credentials.from_service_account_info(
                info,
                scopes=CALENDAR_SCOPES,
            )
            self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        except (GoogleAuthError, ValueError, KeyError) as e:
            raise CalendarClientError(f"Failed to build calendar service: {e}") from e

        logger.info("Google Calendar service initialized")
        return self._service

    # === Availability ===

    def _query_busy_sync(self, time_min: datetime, time_max: datetime) -> list[tuple[datetime, datetime]]:
        service = self._get_service()
        body = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "timeZone": self.timezone,
            "items": [{"id": self.calendar_id}],
        }

        try:
            data = service.freebusy().query(body=body).execute()
        except (HttpError, HttpLib2Error, GoogleAuthError, OSError) as e:
            raise CalendarClientError(f"freebusy.query failed: {e}") from e

        calendar = data.get("calendars", {}).get(self.calendar_id, {})
        if calendar.get("errors"):
            raise CalendarClientError(f"freebusy.query errors: {calendar['errors']}")

        try:
            return [
                (parse_rfc3339(b["start"]), parse_rfc3339(b["end"]))
                for b in calendar.get("busy", [])
            ]
        except (KeyError, ValueError) as e:
            raise CalendarClientError(f"Malformed busy interval: {e}") from e

    async def query_busy(self, time_min: datetime, time_max: datetime) -> list[tuple[datetime, datetime]]:
        """Get busy intervals in [time_min, time_max].

        Args:
            time_min: Window start (timezone-aware)
            time_max: Window end (timezone-aware)

        Returns:
            List of (start, end) busy intervals

        Raises:
            CalendarClientError: On configuration or API failure
        """
        return await asyncio.to_thread(self._query_busy_sync, time_min, time_max)

    # === Events ===

    def _insert_event_sync(self, body: dict) -> dict:
        service = self._get_service()
        try:
            return service.events().insert(calendarId=self.calendar_id, body=body).execute()
        except (HttpError, HttpLib2Error, GoogleAuthError, OSError) as e:
            raise CalendarClientError(f"events.insert failed: {e}") from e

    async def insert_event(
        self,
        start: datetime,
        end: datetime,
        summary: str,
        description: str,
        status: str = "tentative",
    ) -> dict:
        """Create a calendar event.

        Args:
            start: Event start (timezone-aware)
            end: Event end (timezone-aware)
            summary: Event title
            description: Event description
            status: Event status ("tentative" or "confirmed")

        Returns:
            Created event resource

        Raises:
            CalendarClientError: On configuration or API failure
        """
        body = {
            "summary": summary,
            "description": description,
            "start": {"dateTime": start.isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": self.timezone},
            "status": status,
        }
        event = await asyncio.to_thread(self._insert_event_sync, body)
        logger.info(f"Calendar event created: {event.get('id')} ({status})")
        return event


# Singleton
_client: Optional[GoogleCalendarClient] = None


def get_calendar_client() -> GoogleCalendarClient:
    """Get singleton GoogleCalendarClient."""
    global _client
    if _client is None:
        _client = GoogleCalendarClient()
    return _client
