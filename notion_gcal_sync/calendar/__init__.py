"""Google Calendar side of the sync."""
from .google_calendar import (
    CalendarAccountConfig,
    CalendarError,
    GoogleCalendarGateway,
    PAGE_ID_PROPERTY,
)

__all__ = [
    "CalendarAccountConfig",
    "CalendarError",
    "GoogleCalendarGateway",
    "PAGE_ID_PROPERTY",
]
