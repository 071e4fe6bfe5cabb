"""Pydantic response schemas for the browser-facing API."""

from .google import (
    CalendarEventRead,
    CalendarEventsResponse,
    EmailThreadRead,
    EmailThreadsResponse,
    StatusRead,
)

__all__ = [
    "CalendarEventRead",
    "CalendarEventsResponse",
    "EmailThreadRead",
    "EmailThreadsResponse",
    "StatusRead",
]
