"""Calendar, Gmail and profile calls made on behalf of a signed-in user."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from career_os.core.oauth_google import REQUEST_TIMEOUT, GoogleAPIError, GoogleCredentials
from career_os.schemas import CalendarEventRead, EmailThreadRead

CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
GMAIL_USER_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
UPCOMING_EVENT_LIMIT = 10
THREAD_METADATA_HEADERS = ("From", "Subject", "Date")

logger = logging.getLogger(__name__)


class GoogleWorkspaceService:
    """Call Google Calendar and Gmail and reshape the results for the browser."""

    async def upcoming_events(
        self, credentials: GoogleCredentials, *, limit: int = UPCOMING_EVENT_LIMIT
    ) -> list[CalendarEventRead]:
        params = {
            "timeMin": datetime.now(timezone.utc).isoformat(),
            "maxResults": limit,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        data = await self._authorized_request("GET", CALENDAR_EVENTS_URL, credentials, params=params)
        items = data.get("items", []) if data else []
        return [parse_event(item) for item in items]

    async def gmail_profile(self, credentials: GoogleCredentials) -> dict[str, Any]:
        data = await self._authorized_request("GET", f"{GMAIL_USER_URL}/profile", credentials)
        return data or {}

    async def inbox_threads(
        self, credentials: GoogleCredentials, *, max_results: int
    ) -> list[EmailThreadRead]:
        """List inbox threads, then fetch every thread's headers concurrently."""

        listing = await self._authorized_request(
            "GET",
            f"{GMAIL_USER_URL}/threads",
            credentials,
            params={"maxResults": max_results, "labelIds": "INBOX"},
        )
        threads = listing.get("threads", []) if listing else []
        if not threads:
            return []

        details = await asyncio.gather(
            *(self._thread_detail(credentials, thread["id"]) for thread in threads)
        )

        results: list[EmailThreadRead] = []
        for summary, detail in zip(threads, details):
            parsed = parse_thread(detail, fallback_snippet=summary.get("snippet", ""))
            if parsed is None:
                logger.info("Dropping thread without usable headers", extra={"thread_id": summary["id"]})
                continue
            results.append(parsed)
        return results

    async def _thread_detail(self, credentials: GoogleCredentials, thread_id: str) -> dict[str, Any]:
        """Fetch one thread's headers; a failed fetch yields a headerless stub."""

        try:
            data = await self._authorized_request(
                "GET",
                f"{GMAIL_USER_URL}/threads/{thread_id}",
                credentials,
                params={"format": "metadata", "metadataHeaders": list(THREAD_METADATA_HEADERS)},
            )
        except GoogleAPIError as exc:
            logger.warning(
                "Failed to fetch Gmail thread",
                extra={"thread_id": thread_id, "status_code": exc.status_code},
            )
            return {"id": thread_id}
        return data or {"id": thread_id}

    async def _authorized_request(
        self,
        method: str,
        url: str,
        credentials: GoogleCredentials,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        headers = await credentials.authorization_header()
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.request(method, url, headers=headers, params=params)
        except httpx.HTTPError as exc:  # pragma: no cover - network failure
            logger.error("Google API request failed", extra={"url": url}, exc_info=exc)
            raise GoogleAPIError("Failed to communicate with Google") from exc

        if response.status_code >= 400:
            logger.error(
                "Google API error",
                extra={"url": url, "status_code": response.status_code, "body": response.text},
            )
            raise GoogleAPIError(
                "Google API error",
                status_code=response.status_code,
                body=response.text,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()


def parse_event(item: dict[str, Any]) -> CalendarEventRead:
    start = item.get("start", {})
    end = item.get("end", {})
    return CalendarEventRead(
        id=item.get("id", ""),
        title=item.get("summary") or "(no title)",
        start=start.get("dateTime") or start.get("date"),
        end=end.get("dateTime") or end.get("date"),
        all_day="dateTime" not in start and "date" in start,
        location=item.get("location"),
        html_link=item.get("htmlLink"),
    )


def parse_thread(thread: dict[str, Any], *, fallback_snippet: str = "") -> EmailThreadRead | None:
    """Reshape a Gmail thread into the inbox row; ``None`` when it has no headers.

    The newest message supplies sender, subject and date. A thread counts as
    read only when none of its messages carries the ``UNREAD`` label.
    """

    messages = thread.get("messages") or []
    if not messages:
        return None

    latest = messages[-1]
    headers = {
        header["name"].lower(): header.get("value", "")
        for header in latest.get("payload", {}).get("headers", [])
        if header.get("name")
    }
    if "from" not in headers and "subject" not in headers:
        return None

    is_read = not any("UNREAD" in message.get("labelIds", []) for message in messages)
    return EmailThreadRead(
        id=thread.get("id", ""),
        sender=headers.get("from", ""),
        subject=headers.get("subject") or "(no subject)",
        snippet=latest.get("snippet") or fallback_snippet,
        date=_message_date(headers.get("date"), latest.get("internalDate")),
        is_read=is_read,
    )


def _message_date(date_header: str | None, internal_date: str | None) -> str:
    if date_header:
        try:
            sent_at = parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            pass
        else:
            # "-0000" parses to a naive datetime
            if sent_at.tzinfo is None:
                sent_at = sent_at.replace(tzinfo=timezone.utc)
            return sent_at.isoformat()
    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc).isoformat()
        except ValueError:
            pass
    return date_header or ""
