"""
Free-slot listing.

Candidate start times are laid out on the working-hours grid of each day
in the clinic timezone, then filtered against the calendar's busy
intervals.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.models.slots import Slot
from .calendar_client import GoogleCalendarClient, get_calendar_client

logger = logging.getLogger(__name__)

WEEKDAYS_ES = ["lun", "mar", "mié", "jue", "vie", "sáb", "dom"]
MONTHS_ES = ["ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sep", "oct", "nov", "dic"]


def format_slot_label(start: datetime) -> str:
    """Spanish label for a slot, e.g. "lun 19 oct 2026, 09:00"."""
    return (
        f"{WEEKDAYS_ES[start.weekday()]} {start.day} "
        f"{MONTHS_ES[start.month - 1]} {start.year}, {start:%H:%M}"
    )


def parse_wall_clock(value: str) -> time:
    """Parse "HH:MM"."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def candidate_starts(
    now: datetime,
    window_days: int,
    tz: ZoneInfo,
    slot_minutes: int,
    work_start: time,
    work_end: time,
) -> list[datetime]:
    """Slot-aligned starts from today through now + window_days, not before now."""
    local_now = now.astimezone(tz)
    last_day = (local_now + timedelta(days=window_days)).date()
    step = timedelta(minutes=slot_minutes)

    starts = []
    day: date = local_now.date()
    while day <= last_day:
        current = datetime.combine(day, work_start, tzinfo=tz)
        day_end = datetime.combine(day, work_end, tzinfo=tz)
        while current < day_end:
            if current >= local_now:
                starts.append(current)
            current += step
        day += timedelta(days=1)
    return starts


def overlaps(start: datetime, end: datetime, busy: list[tuple[datetime, datetime]]) -> bool:
    """Check if [start, end) intersects any busy interval."""
    return any(start < busy_end and end > busy_start for busy_start, busy_end in busy)


class AvailabilityService:
    """Lists free consultation slots from the clinic calendar."""

    def __init__(self, calendar_client: Optional[GoogleCalendarClient] = None):
        """Initialize service.

        Args:
            calendar_client: Optional calendar client (for testing)
        """
        self._calendar = calendar_client

    @property
    def calendar(self) -> GoogleCalendarClient:
        if self._calendar is None:
            self._calendar = get_calendar_client()
        return self._calendar

    async def list_free_slots(
        self,
        window_days: Optional[int] = None,
        tz: Optional[str] = None,
        slot_minutes: Optional[int] = None,
        work_start: Optional[str] = None,
        work_end: Optional[str] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Slot]:
        """
        List free slots, soonest first.

        Args:
            window_days: Days to look ahead
            tz: IANA timezone of the working hours
            slot_minutes: Slot granularity
            work_start: Working day start, "HH:MM"
            work_end: Working day end (exclusive), "HH:MM"
            limit: Maximum slots to return
            now: Current time (for testing); defaults to the wall clock

        Returns:
            Up to ``limit`` free slots

        Raises:
            CalendarClientError: If busy intervals cannot be fetched
        """
        window_days = window_days if window_days is not None else settings.calendar_lookahead_days
        zone = ZoneInfo(tz or settings.calendar_timezone)
        slot_minutes = slot_minutes or settings.calendar_slot_minutes
        limit = limit if limit is not None else settings.calendar_max_slots
        now = now or datetime.now(zone)
        if now.tzinfo is None:
            now = now.replace(tzinfo=zone)

        starts = candidate_starts(
            now=now,
            window_days=window_days,
            tz=zone,
            slot_minutes=slot_minutes,
            work_start=parse_wall_clock(work_start or settings.calendar_work_start),
            work_end=parse_wall_clock(work_end or settings.calendar_work_end),
        )

        length = timedelta(minutes=slot_minutes)
        # Busy query must cover every candidate, including the rest of the last day
        time_max = now + timedelta(days=window_days)
        if starts:
            time_max = max(time_max, starts[-1] + length)
        busy = await self.calendar.query_busy(now, time_max)

        free = [s for s in starts if not overlaps(s, s + length, busy)]

        logger.debug(
            f"Availability: {len(starts)} candidates, {len(busy)} busy intervals, "
            f"{len(free)} free"
        )
        return [Slot(start=s, label=format_slot_label(s)) for s in free[:limit]]


# Singleton
_service: Optional[AvailabilityService] = None


def get_availability_service() -> AvailabilityService:
    """Get singleton AvailabilityService."""
    global _service
    if _service is None:
        _service = AvailabilityService()
    return _service
