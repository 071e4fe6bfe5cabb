"""Session-authenticated proxy routes for Google Calendar and Gmail."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from career_os.api.deps import (
    get_session_manager,
    get_session_subject,
    get_workspace_service,
    require_credentials,
)
from career_os.core.errors import SessionExpired, UpstreamAPIFailure
from career_os.core.oauth_google import GoogleAPIError, GoogleCredentials, GoogleNotConnectedError
from career_os.schemas import CalendarEventsResponse, EmailThreadsResponse, StatusRead
from career_os.services.google_api import GoogleWorkspaceService
from career_os.services.oauth_session import OAuthSessionManager

router = APIRouter(prefix="/api/google", tags=["google"])


@router.get("/status", response_model=StatusRead, response_model_exclude_none=True)
async def google_status(
    subject: str | None = Depends(get_session_subject),
    manager: OAuthSessionManager = Depends(get_session_manager),
) -> StatusRead:
    """Report whether the browser session maps to a connected Google account."""

    status = await manager.status(subject)
    return StatusRead(
        connected=status.connected, email=status.email, last_synced_at=status.last_synced_at
    )


@router.get("/calendar/upcoming", response_model=CalendarEventsResponse)
async def upcoming_events(
    credentials: GoogleCredentials = Depends(require_credentials),
    service: GoogleWorkspaceService = Depends(get_workspace_service),
) -> CalendarEventsResponse:
    """Return the next upcoming events of the primary calendar."""

    try:
        events = await service.upcoming_events(credentials)
    except GoogleNotConnectedError as exc:
        raise SessionExpired() from exc
    except GoogleAPIError as exc:
        raise UpstreamAPIFailure("Failed to fetch calendar events") from exc
    return CalendarEventsResponse(events=events)


@router.get("/gmail/profile")
async def gmail_profile(
    credentials: GoogleCredentials = Depends(require_credentials),
    service: GoogleWorkspaceService = Depends(get_workspace_service),
) -> dict[str, Any]:
    try:
        return await service.gmail_profile(credentials)
    except GoogleNotConnectedError as exc:
        raise SessionExpired() from exc
    except GoogleAPIError as exc:
        raise UpstreamAPIFailure("Failed to fetch Gmail profile") from exc


@router.get("/gmail/threads", response_model=EmailThreadsResponse)
async def gmail_threads(
    max_results: int = Query(15, alias="maxResults", ge=1, le=100),
    credentials: GoogleCredentials = Depends(require_credentials),
    service: GoogleWorkspaceService = Depends(get_workspace_service),
) -> EmailThreadsResponse:
    """Return recent inbox threads with sender, subject, snippet, date and read state."""

    try:
        threads = await service.inbox_threads(credentials, max_results=max_results)
    except GoogleNotConnectedError as exc:
        raise SessionExpired() from exc
    except GoogleAPIError as exc:
        raise UpstreamAPIFailure("Failed to fetch Gmail threads") from exc
    return EmailThreadsResponse(threads=threads)
