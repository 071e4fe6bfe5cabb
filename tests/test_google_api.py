from __future__ import annotations

import pytest

from career_os.core.oauth_google import GoogleAPIError, GoogleNotConnectedError
from career_os.services.google_api import GMAIL_USER_URL, parse_thread

CALENDAR_ITEMS = [
    {
        "id": "evt-1",
        "summary": "Recruiter screen",
        "start": {"dateTime": "2026-10-20T10:00:00+02:00"},
        "end": {"dateTime": "2026-10-20T10:30:00+02:00"},
        "location": "Meet",
        "htmlLink": "https://calendar.google.com/event?eid=1",
    },
    {"id": "evt-2", "start": {"date": "2026-10-21"}, "end": {"date": "2026-10-22"}},
]


def metadata_thread(thread_id: str, *, sender: str, subject: str, unread: bool) -> dict:
    return {
        "id": thread_id,
        "messages": [
            {
                "id": f"{thread_id}-m1",
                "labelIds": ["INBOX"],
                "snippet": "older message",
                "payload": {"headers": [{"name": "From", "value": "someone@example.com"}]},
            },
            {
                "id": f"{thread_id}-m2",
                "labelIds": ["INBOX", "UNREAD"] if unread else ["INBOX"],
                "snippet": f"latest in {thread_id}",
                "internalDate": "1760781600000",
                "payload": {
                    "headers": [
                        {"name": "From", "value": sender},
                        {"name": "Subject", "value": subject},
                        {"name": "Date", "value": "Sat, 18 Oct 2025 10:00:00 +0000"},
                    ]
                },
            },
        ],
    }


@pytest.fixture()
def fake_workspace(monkeypatch):
    """Serve canned Google API payloads keyed by URL, recording the bearer token used."""

    class FakeWorkspace:
        def __init__(self) -> None:
            self.responses: dict[str, dict | Exception] = {}
            self.calls: list[tuple[str, dict | None, str]] = []

    fake = FakeWorkspace()

    async def fake_authorized_request(self, method, url, credentials, *, params=None):  # type: ignore[override]
        headers = await credentials.authorization_header()
        fake.calls.append((url, params, headers["Authorization"]))
        response = fake.responses[url]
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(
        "career_os.services.google_api.GoogleWorkspaceService._authorized_request",
        fake_authorized_request,
    )
    return fake


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "path",
    ["/api/google/calendar/upcoming", "/api/google/gmail/profile", "/api/google/gmail/threads"],
)
async def test_proxy_endpoints_require_session(client, path):
    response = await client.get(path)

    assert response.status_code == 401
    assert response.json()["error"] == {"code": "UNAUTHORIZED", "message": "Unauthorized"}


@pytest.mark.anyio("asyncio")
async def test_valid_session_without_stored_credentials_is_expired(app, client):
    session_value = app.state.session_manager.cookies.sign("career_os_session", "ghost")

    response = await client.get(
        "/api/google/calendar/upcoming", headers={"Cookie": f"career_os_session={session_value}"}
    )

    assert response.status_code == 401
    assert response.json()["error"] == {"code": "SESSION_EXPIRED", "message": "Session expired"}


@pytest.mark.anyio("asyncio")
async def test_upcoming_events_are_reshaped(client, connect_google, fake_workspace):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 3600})
    fake_workspace.responses[
        "https://www.googleapis.com/calendar/v3/calendars/primary/events"
    ] = {"items": CALENDAR_ITEMS}

    response = await client.get("/api/google/calendar/upcoming")

    assert response.status_code == 200
    events = response.json()["events"]
    assert events[0] == {
        "id": "evt-1",
        "title": "Recruiter screen",
        "start": "2026-10-20T10:00:00+02:00",
        "end": "2026-10-20T10:30:00+02:00",
        "allDay": False,
        "location": "Meet",
        "htmlLink": "https://calendar.google.com/event?eid=1",
    }
    assert events[1]["title"] == "(no title)"
    assert events[1]["allDay"] is True
    assert events[1]["start"] == "2026-10-21"

    _, params, authorization = fake_workspace.calls[0]
    assert params["maxResults"] == 10
    assert params["orderBy"] == "startTime"
    assert params["singleEvents"] == "true"
    assert authorization == "Bearer T1"


@pytest.mark.anyio("asyncio")
async def test_expired_token_is_refreshed_and_stored_before_the_call(
    app, client, connect_google, fake_google, fake_workspace
):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 0})
    fake_google.token_responses.append({"access_token": "T2", "expires_in": 3600})
    fake_workspace.responses[f"{GMAIL_USER_URL}/profile"] = {
        "emailAddress": "a@b.com",
        "messagesTotal": 42,
    }

    response = await client.get("/api/google/gmail/profile")

    assert response.status_code == 200
    assert response.json() == {"emailAddress": "a@b.com", "messagesTotal": 42}
    assert fake_workspace.calls[0][2] == "Bearer T2"
    assert fake_google.refreshes[0]["refresh_token"] == "R1"

    manager = app.state.session_manager
    record = await app.state.account_store.get("u1")
    assert manager.cipher.decrypt(record.access_token) == "T2"
    assert manager.cipher.decrypt(record.refresh_token) == "R1"


@pytest.mark.anyio("asyncio")
async def test_refresh_rejected_by_google_returns_session_expired(
    client, connect_google, fake_google, fake_workspace
):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 0})
    fake_google.token_responses.append(GoogleAPIError("invalid_grant", status_code=400))

    response = await client.get("/api/google/gmail/profile")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "SESSION_EXPIRED"
    assert fake_workspace.calls == []


@pytest.mark.anyio("asyncio")
async def test_gmail_threads_fetch_details_and_drop_headerless_threads(
    client, connect_google, fake_workspace
):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 3600})
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads"] = {
        "threads": [
            {"id": "t1", "snippet": "list snippet 1"},
            {"id": "t2", "snippet": "list snippet 2"},
            {"id": "t3", "snippet": "list snippet 3"},
        ]
    }
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads/t1"] = metadata_thread(
        "t1", sender="Recruiter <jobs@acme.test>", subject="Interview", unread=True
    )
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads/t2"] = {
        "id": "t2",
        "messages": [{"id": "t2-m1", "payload": {"headers": []}}],
    }
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads/t3"] = metadata_thread(
        "t3", sender="Friend <f@example.com>", subject="Coffee?", unread=False
    )

    response = await client.get("/api/google/gmail/threads", params={"maxResults": 3})

    assert response.status_code == 200
    threads = response.json()["threads"]
    assert [thread["id"] for thread in threads] == ["t1", "t3"]
    assert threads[0] == {
        "id": "t1",
        "sender": "Recruiter <jobs@acme.test>",
        "subject": "Interview",
        "snippet": "latest in t1",
        "date": "2025-10-18T10:00:00+00:00",
        "isRead": False,
    }
    assert threads[1]["isRead"] is True

    list_call = fake_workspace.calls[0]
    assert list_call[0] == f"{GMAIL_USER_URL}/threads"
    assert list_call[1] == {"maxResults": 3, "labelIds": "INBOX"}
    detail_params = fake_workspace.calls[1][1]
    assert detail_params["format"] == "metadata"


@pytest.mark.anyio("asyncio")
async def test_gmail_threads_drop_a_thread_whose_detail_fetch_fails(
    client, connect_google, fake_workspace
):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 3600})
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads"] = {
        "threads": [{"id": "t1"}, {"id": "t2"}]
    }
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads/t1"] = metadata_thread(
        "t1", sender="Recruiter <jobs@acme.test>", subject="Interview", unread=True
    )
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads/t2"] = GoogleAPIError(
        "Google API error", status_code=404, body="Requested entity was not found."
    )

    response = await client.get("/api/google/gmail/threads")

    assert response.status_code == 200
    assert [thread["id"] for thread in response.json()["threads"]] == ["t1"]


@pytest.mark.anyio("asyncio")
async def test_gmail_threads_detail_refresh_rejection_is_session_expired(
    client, connect_google, fake_google, fake_workspace
):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 3600})
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads"] = {"threads": [{"id": "t1"}]}
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads/t1"] = GoogleNotConnectedError(
        "Google refused to refresh the stored token"
    )

    response = await client.get("/api/google/gmail/threads")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "SESSION_EXPIRED"


@pytest.mark.anyio("asyncio")
async def test_gmail_threads_validates_max_results(client, connect_google):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 3600})

    response = await client.get("/api/google/gmail/threads", params={"maxResults": 0})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.anyio("asyncio")
async def test_upstream_failure_returns_generic_500(client, connect_google, fake_workspace, caplog):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 3600})
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads"] = GoogleAPIError(
        "Google API error", status_code=503, body="backend error"
    )

    response = await client.get("/api/google/gmail/threads")

    assert response.status_code == 500
    assert response.json()["error"] == {
        "code": "UPSTREAM_API_FAILURE",
        "message": "Failed to fetch Gmail threads",
    }
    logged = [record for record in caplog.records if record.exc_info]
    assert len(logged) == 1
    assert logged[0].getMessage() == "Failed to fetch Gmail threads"
    assert isinstance(logged[0].exc_info[1], GoogleAPIError)


@pytest.mark.anyio("asyncio")
async def test_empty_inbox_returns_no_threads(client, connect_google, fake_workspace):
    await connect_google({"access_token": "T1", "refresh_token": "R1", "expires_in": 3600})
    fake_workspace.responses[f"{GMAIL_USER_URL}/threads"] = {"resultSizeEstimate": 0}

    response = await client.get("/api/google/gmail/threads")

    assert response.json() == {"threads": []}
    assert len(fake_workspace.calls) == 1


def test_parse_thread_falls_back_to_list_snippet_and_internal_date():
    thread = {
        "id": "t9",
        "messages": [
            {
                "labelIds": ["INBOX"],
                "internalDate": "1760781600000",
                "payload": {"headers": [{"name": "Subject", "value": "No sender"}]},
            }
        ],
    }

    parsed = parse_thread(thread, fallback_snippet="from listing")

    assert parsed is not None
    assert parsed.sender == ""
    assert parsed.snippet == "from listing"
    assert parsed.date == "2025-10-18T10:00:00+00:00"


def test_parse_thread_reads_unknown_timezone_date_as_utc():
    thread = {
        "id": "t8",
        "messages": [
            {
                "payload": {
                    "headers": [
                        {"name": "From", "value": "bot@example.com"},
                        {"name": "Date", "value": "Sat, 18 Oct 2025 10:00:00 -0000"},
                    ]
                },
            }
        ],
    }

    parsed = parse_thread(thread)

    assert parsed is not None
    assert parsed.date == "2025-10-18T10:00:00+00:00"


def test_parse_thread_without_messages_is_dropped():
    assert parse_thread({"id": "t0"}) is None
