"""Google OAuth helpers: consent URL, token endpoint calls and live credentials."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from career_os.core.config import Settings

AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
TOKEN_EXPIRY_GRACE = timedelta(seconds=60)
REQUEST_TIMEOUT = 10.0

logger = logging.getLogger(__name__)


class GoogleOAuthError(Exception):
    """Base error for Google OAuth operations."""


class GoogleNotConfiguredError(GoogleOAuthError):
    """Raised when OAuth credentials are not configured."""


class GoogleNotConnectedError(GoogleOAuthError):
    """Raised when stored credentials can no longer be used or refreshed."""


class GoogleAPIError(GoogleOAuthError):
    """Raised when Google API returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class TokenGrant:
    """Plaintext token material returned by the Google token endpoint."""

    access_token: str
    refresh_token: str | None = None
    expiry: datetime | None = None
    scope: str = ""


RotationHandler = Callable[[TokenGrant], Awaitable[None]]


class GoogleOAuthClient:
    """Handle OAuth URL generation and token endpoint exchanges."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _require_configured(self) -> None:
        if not (
            self.settings.google_client_id
            and self.settings.google_client_secret
            and self.settings.google_redirect_uri
            and self.settings.google_scopes
        ):
            raise GoogleNotConfiguredError("Google OAuth credentials are not fully configured")

    def build_authorize_url(self, *, state: str) -> str:
        """Return the Google consent URL for an offline, forced-consent request."""

        self._require_configured()
        params: dict[str, Any] = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.settings.google_scopes),
            "access_type": "offline",
            "include_granted_scopes": "true",
            # forced consent makes Google issue a refresh token to returning users too
            "prompt": "consent",
            "state": state,
        }
        return f"{AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""

        self._require_configured()
        payload = {
            "code": code,
            "client_id": self.settings.google_client_id,
            "client_secret": self.settings.google_client_secret,
            "redirect_uri": self.settings.google_redirect_uri,
            "grant_type": "authorization_code",
        }
        return self._parse_grant(await self._request_token(payload))

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        self._require_configured()
        payload = {
            "refresh_token": refresh_token,
            "client_id": self.settings.google_client_id,
            "client_secret": self.settings.google_client_secret,
            "grant_type": "refresh_token",
        }
        return self._parse_grant(await self._request_token(payload))

    async def fetch_userinfo(self, access_token: str) -> dict[str, Any]:
        """Return the basic profile (``id``, ``email``, ...) of the token owner."""

        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.get(USERINFO_URL, headers=headers)
        except httpx.HTTPError as exc:  # pragma: no cover - network failure
            logger.error("Failed to reach the Google userinfo endpoint", exc_info=exc)
            raise GoogleAPIError("Unable to reach Google userinfo endpoint") from exc

        if response.status_code >= 400:
            logger.error(
                "Google userinfo request failed",
                extra={"status_code": response.status_code, "body": response.text},
            )
            raise GoogleAPIError(
                "Google userinfo request failed",
                status_code=response.status_code,
                body=response.text,
            )
        return _json_body(response, "Google userinfo response is not valid JSON")

    @staticmethod
    def _parse_grant(token_data: dict[str, Any]) -> TokenGrant:
        access_token = token_data.get("access_token")
        if not access_token:
            raise GoogleAPIError("Google token response missing access_token")

        expiry = None
        if token_data.get("expires_in") is not None:
            try:
                lifetime = int(token_data["expires_in"])
            except (TypeError, ValueError) as exc:
                raise GoogleAPIError("Google token response has an invalid expires_in") from exc
            expiry = datetime.now(timezone.utc) + timedelta(seconds=lifetime)

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token") or None,
            expiry=expiry,
            scope=token_data.get("scope") or "",
        )

    async def _request_token(self, payload: dict[str, str]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(TOKEN_URL, data=payload)
        except httpx.HTTPError as exc:  # pragma: no cover - network failure
            logger.error("Failed to communicate with Google OAuth token endpoint", exc_info=exc)
            raise GoogleAPIError("Unable to reach Google OAuth endpoint") from exc

        if response.status_code >= 400:
            logger.error(
                "Google OAuth token request failed",
                extra={
                    "status_code": response.status_code,
                    "body": response.text,
                    "grant_type": payload.get("grant_type"),
                },
            )
            raise GoogleAPIError(
                "Google OAuth token request failed",
                status_code=response.status_code,
                body=response.text,
            )
        return _json_body(response, "Google OAuth token response is not valid JSON")


def _json_body(response: httpx.Response, message: str) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        logger.error(message, extra={"status_code": response.status_code, "body": response.text[:200]})
        raise GoogleAPIError(message, status_code=response.status_code, body=response.text) from exc
    if not isinstance(data, dict):
        raise GoogleAPIError(message, status_code=response.status_code, body=response.text)
    return data


class GoogleCredentials:
    """A usable Google credential that refreshes itself when it expires.

    When a refresh happens the ``on_rotate`` handler is awaited with the new
    token material before the refreshed access token is handed out, so the
    caller's request only proceeds once the rotation has been recorded.
    """

    def __init__(
        self,
        oauth_client: GoogleOAuthClient,
        *,
        access_token: str,
        refresh_token: str | None = None,
        expiry: datetime | None = None,
        on_rotate: RotationHandler | None = None,
    ):
        self._oauth = oauth_client
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expiry = expiry
        self._on_rotate = on_rotate
        self._lock = asyncio.Lock()

    @property
    def expired(self) -> bool:
        """True when the expiry is unknown or within the refresh grace window."""

        if self.expiry is None:
            return True
        return self.expiry - datetime.now(timezone.utc) <= TOKEN_EXPIRY_GRACE

    async def get_access_token(self) -> str:
        async with self._lock:
            if self.expired:
                if self.refresh_token:
                    await self._refresh()
                elif self.expiry is not None and self.expiry <= datetime.now(timezone.utc):
                    raise GoogleNotConnectedError(
                        "Stored Google token has expired and cannot be refreshed"
                    )
        return self.access_token

    async def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self.get_access_token()}"}

    async def _refresh(self) -> None:
        assert self.refresh_token is not None
        try:
            grant = await self._oauth.refresh_access_token(self.refresh_token)
        except GoogleAPIError as exc:
            if exc.status_code in (400, 401):
                # invalid_grant: the user revoked access or the token was rotated away
                raise GoogleNotConnectedError("Google refused to refresh the stored token") from exc
            raise

        self.access_token = grant.access_token
        self.expiry = grant.expiry
        if grant.refresh_token:
            self.refresh_token = grant.refresh_token
        logger.info("Refreshed Google access token")

        if self._on_rotate is not None:
            await self._on_rotate(grant)
