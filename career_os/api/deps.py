"""Request dependencies shared by the auth and Google routes."""
from __future__ import annotations

from fastapi import Depends, Request

from career_os.core.config import Settings
from career_os.core.cookies import SESSION_COOKIE
from career_os.core.errors import SessionExpired, Unauthorized
from career_os.core.oauth_google import GoogleCredentials
from career_os.services.google_api import GoogleWorkspaceService
from career_os.services.oauth_session import OAuthSessionManager


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_manager(request: Request) -> OAuthSessionManager:
    return request.app.state.session_manager


def get_workspace_service(request: Request) -> GoogleWorkspaceService:
    return request.app.state.workspace_service


def get_session_subject(
    request: Request, manager: OAuthSessionManager = Depends(get_session_manager)
) -> str | None:
    """Return the subject from a valid session cookie, if there is one."""

    return manager.read_session(request.cookies.get(SESSION_COOKIE))


async def require_credentials(
    subject: str | None = Depends(get_session_subject),
    manager: OAuthSessionManager = Depends(get_session_manager),
) -> GoogleCredentials:
    """Resolve the live Google credential for the signed-in user or fail with 401."""

    if subject is None:
        raise Unauthorized()
    credentials = await manager.resolve_client(subject)
    if credentials is None:
        raise SessionExpired()
    return credentials
