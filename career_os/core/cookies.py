"""Signed cookie values for the session and the OAuth anti-forgery state."""
from __future__ import annotations

from datetime import timedelta

from fastapi import Response
from itsdangerous import BadSignature, TimestampSigner

SESSION_COOKIE = "career_os_session"
STATE_COOKIE = "oauth_state"
SESSION_MAX_AGE = timedelta(days=7)
STATE_MAX_AGE = timedelta(minutes=10)


class CookieSigner:
    """Sign and verify cookie values with the server secret.

    Each cookie name uses its own salt, so a state cookie value can never be
    replayed as a session cookie.
    """

    def __init__(self, secret: str, *, secure: bool = False):
        self._secret = secret
        self.secure = secure

    def _signer(self, name: str) -> TimestampSigner:
        return TimestampSigner(self._secret, salt=f"career-os.{name}")

    def sign(self, name: str, value: str) -> str:
        return self._signer(name).sign(value).decode("utf-8")

    def unsign(self, name: str, signed_value: str | None, max_age: timedelta) -> str | None:
        """Return the original value, or ``None`` when missing, forged or expired."""

        if not signed_value:
            return None
        try:
            value = self._signer(name).unsign(signed_value, max_age=int(max_age.total_seconds()))
        except BadSignature:
            return None
        return value.decode("utf-8")

    def set_state(self, response: Response, state: str) -> None:
        response.set_cookie(
            STATE_COOKIE,
            self.sign(STATE_COOKIE, state),
            max_age=int(STATE_MAX_AGE.total_seconds()),
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def read_state(self, signed_value: str | None) -> str | None:
        return self.unsign(STATE_COOKIE, signed_value, STATE_MAX_AGE)

    def clear_state(self, response: Response) -> None:
        response.delete_cookie(STATE_COOKIE, path="/", secure=self.secure, httponly=True)

    def set_session(self, response: Response, subject: str) -> None:
        response.set_cookie(
            SESSION_COOKIE,
            self.sign(SESSION_COOKIE, subject),
            max_age=int(SESSION_MAX_AGE.total_seconds()),
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def read_session(self, signed_value: str | None) -> str | None:
        return self.unsign(SESSION_COOKIE, signed_value, SESSION_MAX_AGE)

    def clear_session(self, response: Response) -> None:
        response.delete_cookie(
            SESSION_COOKIE, path="/", secure=self.secure, httponly=True, samesite="lax"
        )
