"""Calendar sync services."""

from src.services.calendar.google_calendar import (
    CalendarError,
    CalendarNotConnectedError,
    GoogleCalendarService,
    SessionExpiredError,
)

__all__ = [
    "CalendarError",
    "CalendarNotConnectedError",
    "GoogleCalendarService",
    "SessionExpiredError",
]
