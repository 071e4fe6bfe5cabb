"""OAuth2 authorization-code flow and per-request credential resolution."""
from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from career_os.core.cookies import CookieSigner
from career_os.core.crypto import TokenCipher, TokenDecryptionError
from career_os.core.errors import AuthenticationFailed, AuthorizationDenied, StateMismatch
from career_os.core.oauth_google import (
    GoogleCredentials,
    GoogleOAuthClient,
    GoogleOAuthError,
    TokenGrant,
)
from career_os.services.account_store import AccountStore, CredentialRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    email: str | None = None
    last_synced_at: datetime | None = None


class OAuthSessionManager:
    """Owns the three-phase login flow and turns sessions into credentials.

    Login attempts move from unauthenticated (:meth:`start_flow`) to awaiting
    the callback (:meth:`handle_callback`) to authenticated, where the route
    issues the session cookie. Disconnecting only drops the cookie; the stored
    record and the grant at Google are left in place.
    """

    def __init__(
        self,
        *,
        store: AccountStore,
        cipher: TokenCipher,
        oauth_client: GoogleOAuthClient,
        cookies: CookieSigner,
    ):
        self.store = store
        self.cipher = cipher
        self.oauth_client = oauth_client
        self.cookies = cookies

    def start_flow(self) -> tuple[str, str]:
        """Return a fresh state nonce and the consent URL bound to it."""

        state = secrets.token_urlsafe(32)
        return state, self.oauth_client.build_authorize_url(state=state)

    async def handle_callback(
        self,
        *,
        code: str | None,
        returned_state: str | None,
        state_cookie: str | None,
        error: str | None = None,
    ) -> CredentialRecord:
        """Validate the callback, exchange the code and store the credentials."""

        expected_state = self.cookies.read_state(state_cookie)
        if (
            expected_state is None
            or returned_state is None
            or not hmac.compare_digest(expected_state, returned_state)
        ):
            logger.warning("Rejected OAuth callback with invalid state")
            raise StateMismatch()

        if error or not code:
            logger.info("OAuth consent not granted", extra={"oauth_error": error})
            raise AuthorizationDenied(error or "Missing authorization code")

        try:
            grant = await self.oauth_client.exchange_code(code)
            profile = await self.oauth_client.fetch_userinfo(grant.access_token)
        except GoogleOAuthError as exc:
            raise AuthenticationFailed() from exc

        subject = profile.get("id")
        email = profile.get("email")
        if not subject or not email:
            logger.error("Google profile response is missing id or email")
            raise AuthenticationFailed()

        record = CredentialRecord(
            subject=str(subject),
            email=email,
            access_token=self.cipher.encrypt(grant.access_token),
            refresh_token=self.cipher.encrypt(grant.refresh_token) if grant.refresh_token else None,
            expiry=grant.expiry,
            granted_scopes=grant.scope,
            last_synced_at=datetime.now(timezone.utc),
        )
        stored = await self.store.upsert(record)
        logger.info("Google account connected", extra={"subject": stored.subject})
        return stored

    def read_session(self, session_cookie: str | None) -> str | None:
        return self.cookies.read_session(session_cookie)

    async def status(self, subject: str | None) -> ConnectionStatus:
        if not subject:
            return ConnectionStatus(connected=False)
        record = await self.store.get(subject)
        if record is None:
            return ConnectionStatus(connected=False)
        return ConnectionStatus(
            connected=True, email=record.email, last_synced_at=record.last_synced_at
        )

    async def resolve_client(self, subject: str) -> GoogleCredentials | None:
        """Return a live credential for ``subject`` or ``None`` when there is none.

        Undecryptable tokens mean a rotated key or corrupted data; they are
        logged and reported as "no credential" so the user has to sign in again.
        """

        record = await self.store.get(subject)
        if record is None:
            return None

        try:
            access_token = self.cipher.decrypt(record.access_token)
            refresh_token = (
                self.cipher.decrypt(record.refresh_token) if record.refresh_token else None
            )
        except TokenDecryptionError as exc:
            logger.error(
                "Stored Google credentials could not be decrypted",
                extra={"subject": subject},
                exc_info=exc,
            )
            return None

        async def on_rotate(grant: TokenGrant) -> None:
            await self._record_rotation(subject, grant)

        return GoogleCredentials(
            self.oauth_client,
            access_token=access_token,
            refresh_token=refresh_token,
            expiry=record.expiry,
            on_rotate=on_rotate,
        )

    async def _record_rotation(self, subject: str, grant: TokenGrant) -> None:
        current = await self.store.get(subject)
        if current is None:
            logger.warning("Token rotated for an unknown subject", extra={"subject": subject})
            return
        await self.store.upsert(
            CredentialRecord(
                subject=subject,
                email=current.email,
                access_token=self.cipher.encrypt(grant.access_token),
                refresh_token=self.cipher.encrypt(grant.refresh_token) if grant.refresh_token else None,
                expiry=grant.expiry,
                granted_scopes=grant.scope,
                last_synced_at=datetime.now(timezone.utc),
            )
        )
