"""Tentative appointment creation."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .calendar_client import CalendarClientError, GoogleCalendarClient, get_calendar_client

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    """Result of a booking attempt."""

    success: bool
    event_id: Optional[str] = None
    html_link: Optional[str] = None
    error: Optional[str] = None


class BookingSink:
    """Writes tentative consultation events to the clinic calendar."""

    def __init__(self, calendar_client: Optional[GoogleCalendarClient] = None):
        """Initialize sink.

        Args:
            calendar_client: Optional calendar client (for testing)
        """
        self._calendar = calendar_client

    @property
    def calendar(self) -> GoogleCalendarClient:
        if self._calendar is None:
            self._calendar = get_calendar_client()
        return self._calendar

    async def create_tentative_event(
        self,
        start: datetime,
        duration_minutes: int,
        summary: str,
        description: str,
    ) -> BookingResult:
        """Create one tentative event. Never raises.

        Args:
            start: Appointment start (timezone-aware)
            duration_minutes: Appointment length
            summary: Event title
            description: Event description

        Returns:
            BookingResult with success status
        """
        try:
            event = await self.calendar.insert_event(
                start=start,
                end=start + timedelta(minutes=duration_minutes),
                summary=summary,
                description=description,
                status="tentative",
            )
        except CalendarClientError as e:
            logger.error(f"Failed to create tentative event: {e}")
            return BookingResult(success=False, error=str(e))

        return BookingResult(
            success=True,
            event_id=event.get("id"),
            html_link=event.get("htmlLink"),
        )


# Singleton
_sink: Optional[BookingSink] = None


def get_booking_sink() -> BookingSink:
    """Get singleton BookingSink."""
    global _sink
    if _sink is None:
        _sink = BookingSink()
    return _sink
