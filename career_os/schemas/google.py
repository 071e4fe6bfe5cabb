"""Pydantic schemas for Google status, calendar and mail responses."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusRead(CamelModel):
    connected: bool
    email: str | None = None
    last_synced_at: datetime | None = None


class CalendarEventRead(CamelModel):
    id: str
    title: str
    start: str | None = None
    end: str | None = None
    all_day: bool = False
    location: str | None = None
    html_link: str | None = None


class EmailThreadRead(CamelModel):
    id: str
    sender: str
    subject: str
    snippet: str
    date: str
    is_read: bool


class CalendarEventsResponse(BaseModel):
    events: list[CalendarEventRead]


class EmailThreadsResponse(BaseModel):
    threads: list[EmailThreadRead]
