"""Google OAuth login, callback and disconnect routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from career_os.api.deps import get_app_settings, get_session_manager
from career_os.core.config import Settings
from career_os.core.cookies import STATE_COOKIE
from career_os.core.errors import ConfigurationMissing
from career_os.core.oauth_google import GoogleNotConfiguredError
from career_os.services.oauth_session import OAuthSessionManager

router = APIRouter(prefix="/auth/google", tags=["auth"])


@router.get("/start", status_code=status.HTTP_302_FOUND)
async def google_start(
    manager: OAuthSessionManager = Depends(get_session_manager),
) -> RedirectResponse:
    """Redirect the user to Google's consent page with a fresh state cookie."""

    try:
        state, authorize_url = manager.start_flow()
    except GoogleNotConfiguredError as exc:
        raise ConfigurationMissing(str(exc)) from exc

    response = RedirectResponse(authorize_url, status_code=status.HTTP_302_FOUND)
    manager.cookies.set_state(response, state)
    return response


@router.get("/callback", status_code=status.HTTP_302_FOUND)
async def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    manager: OAuthSessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings),
) -> RedirectResponse:
    """Validate the state, store the tokens and start the browser session."""

    record = await manager.handle_callback(
        code=code,
        returned_state=state,
        state_cookie=request.cookies.get(STATE_COOKIE),
        error=error,
    )

    response = RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}/settings", status_code=status.HTTP_302_FOUND
    )
    manager.cookies.set_session(response, record.subject)
    manager.cookies.clear_state(response)
    return response


@router.post("/disconnect")
async def google_disconnect(
    manager: OAuthSessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Drop the session cookie; the stored credentials stay in the account store."""

    response = JSONResponse({"success": True})
    manager.cookies.clear_session(response)
    return response
