"""Application error taxonomy rendered by the HTTP layer."""
from __future__ import annotations


class CareerOSError(Exception):
    """Base error carrying the HTTP status and error code it maps to."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ConfigurationMissing(CareerOSError):
    """Raised at startup when required secrets or OAuth credentials are absent."""

    code = "CONFIGURATION_MISSING"
    default_message = "Required configuration is missing"


class StateMismatch(CareerOSError):
    """The OAuth callback state does not match the signed state cookie."""

    status_code = 400
    code = "STATE_MISMATCH"
    default_message = "Invalid state parameter"


class AuthorizationDenied(CareerOSError):
    status_code = 400
    code = "AUTHORIZATION_DENIED"
    default_message = "Authorization was not granted"


class AuthenticationFailed(CareerOSError):
    """Code exchange or profile lookup with the identity provider failed."""

    status_code = 500
    code = "AUTHENTICATION_FAILED"
    default_message = "Authentication failed"


class Unauthorized(CareerOSError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class SessionExpired(CareerOSError):
    """The session cookie is valid but no usable credential could be resolved."""

    status_code = 401
    code = "SESSION_EXPIRED"
    default_message = "Session expired"


class UpstreamAPIFailure(CareerOSError):
    status_code = 500
    code = "UPSTREAM_API_FAILURE"
    default_message = "Upstream API request failed"
