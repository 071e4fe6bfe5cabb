from __future__ import annotations

import base64
import os
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from urllib.parse import parse_qs, urlparse

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient, Response  # noqa: E402

from career_os.core.config import get_settings  # noqa: E402

TEST_ENCRYPTION_KEY = base64.b64encode(b"k" * 32).decode("ascii")

os.environ["APP_ENV"] = "test"
os.environ["ENCRYPTION_KEY"] = TEST_ENCRYPTION_KEY
os.environ["COOKIE_SECRET"] = "test-cookie-secret"
os.environ["COOKIE_SECURE"] = "false"
os.environ["GOOGLE_CLIENT_ID"] = "client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "client-secret"
os.environ["GOOGLE_REDIRECT_URI"] = "http://testserver/auth/google/callback"
os.environ["FRONTEND_URL"] = "http://localhost:5173"
os.environ["ACCOUNT_STORE"] = "memory"
get_settings.cache_clear()


@pytest.fixture()
def app():
    from career_os.main import create_app

    get_settings.cache_clear()
    return create_app()


@pytest.fixture()
async def client(app) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def fake_google(monkeypatch):
    """Replace the Google token and userinfo endpoints with canned responses."""

    class FakeGoogle:
        def __init__(self) -> None:
            self.token_payloads: list[dict[str, str]] = []
            self.token_responses: list[dict] = []
            self.profile: dict = {"id": "u1", "email": "a@b.com"}

        @property
        def exchanges(self) -> list[dict[str, str]]:
            return [p for p in self.token_payloads if p["grant_type"] == "authorization_code"]

        @property
        def refreshes(self) -> list[dict[str, str]]:
            return [p for p in self.token_payloads if p["grant_type"] == "refresh_token"]

    fake = FakeGoogle()

    async def fake_request_token(self, payload):  # type: ignore[override]
        fake.token_payloads.append(payload)
        response = fake.token_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def fake_fetch_userinfo(self, access_token):  # type: ignore[override]
        return fake.profile

    monkeypatch.setattr(
        "career_os.core.oauth_google.GoogleOAuthClient._request_token", fake_request_token
    )
    monkeypatch.setattr(
        "career_os.core.oauth_google.GoogleOAuthClient.fetch_userinfo", fake_fetch_userinfo
    )
    return fake


def state_from_location(location: str) -> str:
    return parse_qs(urlparse(location).query)["state"][0]


@pytest.fixture()
def connect_google(client, fake_google) -> Callable[..., Awaitable[Response]]:
    """Run start + callback against the fake Google endpoints."""

    async def connect(token_response: dict, *, code: str = "abc") -> Response:
        fake_google.token_responses.append(token_response)
        start_resp = await client.get("/auth/google/start")
        assert start_resp.status_code == 302
        state = state_from_location(start_resp.headers["location"])
        return await client.get(
            "/auth/google/callback", params={"code": code, "state": state}
        )

    return connect
