"""Application entrypoint for the Career OS backend."""

import logging

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from career_os.api import router as api_router
from career_os.core.config import Settings, get_settings
from career_os.core.cookies import CookieSigner
from career_os.core.crypto import TokenCipher
from career_os.core.db import create_engine, create_sessionmaker, create_tables
from career_os.core.errors import CareerOSError
from career_os.core.logging import configure_logging
from career_os.core.oauth_google import GoogleOAuthClient
from career_os.services.account_store import (
    AccountStore,
    InMemoryAccountStore,
    SQLAlchemyAccountStore,
)
from career_os.services.google_api import GoogleWorkspaceService
from career_os.services.oauth_session import OAuthSessionManager

logger = logging.getLogger(__name__)

ERROR_CODE_MAP: dict[int, str] = {
    401: "UNAUTHORIZED",
    404: "RESOURCE_NOT_FOUND",
    422: "VALIDATION_ERROR",
}


def create_app(settings: Settings | None = None, *, store: AccountStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Raises :class:`ConfigurationMissing` when the encryption key or the
    Google OAuth client credentials are not configured.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    settings.require_core()

    application = FastAPI(title="Career OS", version=settings.version)
    application.state.settings = settings

    cipher = TokenCipher.from_base64(settings.encryption_key)
    if store is None:
        store = _build_account_store(application, settings)
    application.state.account_store = store
    application.state.session_manager = OAuthSessionManager(
        store=store,
        cipher=cipher,
        oauth_client=GoogleOAuthClient(settings),
        cookies=CookieSigner(settings.session_secret, secure=settings.cookie_secure),
    )
    application.state.workspace_service = GoogleWorkspaceService()

    _configure_cors(application, settings)
    _configure_exception_handlers(application)

    application.include_router(api_router)

    return application


def _build_account_store(application: FastAPI, settings: Settings) -> AccountStore:
    if settings.account_store != "sql":
        logger.info("Using the in-memory account store; credentials are lost on restart")
        return InMemoryAccountStore()

    engine = create_engine(settings)

    @application.on_event("startup")
    async def _on_startup() -> None:  # pragma: no cover - exercised via tests
        await create_tables(engine)

    @application.on_event("shutdown")
    async def _on_shutdown() -> None:  # pragma: no cover
        await engine.dispose()

    return SQLAlchemyAccountStore(create_sessionmaker(engine))


def _configure_cors(application: FastAPI, settings: Settings) -> None:
    if not settings.allowed_origins:
        return

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _configure_exception_handlers(application: FastAPI) -> None:
    application.add_exception_handler(CareerOSError, _career_os_exception_handler)
    application.add_exception_handler(HTTPException, _http_exception_handler)
    application.add_exception_handler(RequestValidationError, _validation_exception_handler)
    application.add_exception_handler(Exception, _unhandled_exception_handler)


async def _career_os_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, CareerOSError)
    if exc.status_code >= 500:
        # the only place a server-side CareerOSError is logged with its cause
        logger.error(exc.message, extra={"code": exc.code}, exc_info=exc.__cause__ or exc)
    return _error_response(exc.code, exc.message, exc.status_code)


async def _http_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HTTPException)
    if isinstance(exc.detail, dict):
        message = str(exc.detail.get("message", "")) or str(exc.detail)
        code = exc.detail.get(
            "code", ERROR_CODE_MAP.get(exc.status_code, f"HTTP_{exc.status_code}")
        )
    else:
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        code = ERROR_CODE_MAP.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _error_response(code, message, exc.status_code)


async def _validation_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    logger.info("Validation error", extra={"errors": exc.errors()})
    return _error_response("VALIDATION_ERROR", "Validation error", status_code=422)


async def _unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled application error")
    return _error_response("INTERNAL_SERVER_ERROR", "Internal server error", status_code=500)


def _error_response(code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})


def run() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)
