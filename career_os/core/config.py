"""Configuration management for the Career OS backend."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from career_os.core.errors import ConfigurationMissing

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/gmail.readonly",
]
DEV_COOKIE_SECRET = "fallback-secret-for-dev-only-change-me"


class Settings(BaseModel):
    """Application configuration loaded from environment variables."""

    app_env: str = "dev"
    version: str = "0.1.0"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8787
    frontend_url: str = "http://localhost:5173"
    cors_origins: list[str] = Field(default_factory=list)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    google_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_GOOGLE_SCOPES))
    cookie_secret: str = ""
    cookie_secure: bool = False
    encryption_key: str = ""
    account_store: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./career_os.db"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            if not value:
                return []
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        if isinstance(value, list):
            return value
        return []

    @field_validator("google_scopes", mode="before")
    @classmethod
    def assemble_google_scopes(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            if not value:
                return list(DEFAULT_GOOGLE_SCOPES)
            return [scope for scope in value.replace(",", " ").split() if scope]
        if isinstance(value, list):
            return value
        return list(DEFAULT_GOOGLE_SCOPES)

    @property
    def allowed_origins(self) -> list[str]:
        origins = [self.frontend_url.rstrip("/")] if self.frontend_url else []
        for origin in self.cors_origins:
            if origin not in origins:
                origins.append(origin)
        return origins

    @property
    def async_database_url(self) -> str:
        if self.database_url.startswith("sqlite+aiosqlite://"):
            return self.database_url
        if self.database_url.startswith("sqlite:///"):
            return self.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        if self.database_url.startswith("sqlite://"):
            return self.database_url.replace("sqlite://", "sqlite+aiosqlite://")
        return self.database_url

    @property
    def session_secret(self) -> str:
        """Return the cookie-signing secret, falling back only in development."""

        if self.cookie_secret:
            return self.cookie_secret
        if self.app_env == "dev":
            logger.warning("COOKIE_SECRET not set - using the development fallback secret")
            return DEV_COOKIE_SECRET
        raise ConfigurationMissing("COOKIE_SECRET must be set outside development")

    def require_core(self) -> None:
        """Fail fast when the encryption key or OAuth client credentials are absent."""

        missing = [
            name
            for name, value in (
                ("ENCRYPTION_KEY", self.encryption_key),
                ("GOOGLE_CLIENT_ID", self.google_client_id),
                ("GOOGLE_CLIENT_SECRET", self.google_client_secret),
                ("GOOGLE_REDIRECT_URI", self.google_redirect_uri),
            )
            if not value
        ]
        if missing:
            raise ConfigurationMissing(f"Missing required configuration: {', '.join(missing)}")


def _build_settings() -> Settings:
    raw_values: dict[str, Any] = {
        "app_env": os.getenv("APP_ENV"),
        "version": os.getenv("APP_VERSION"),
        "log_level": os.getenv("LOG_LEVEL"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
        "frontend_url": os.getenv("FRONTEND_URL"),
        "cors_origins": os.getenv("CORS_ORIGINS"),
        "google_client_id": os.getenv("GOOGLE_CLIENT_ID"),
        "google_client_secret": os.getenv("GOOGLE_CLIENT_SECRET"),
        "google_redirect_uri": os.getenv("GOOGLE_REDIRECT_URI"),
        "google_scopes": os.getenv("GOOGLE_SCOPES"),
        "cookie_secret": os.getenv("COOKIE_SECRET"),
        "cookie_secure": os.getenv("COOKIE_SECURE"),
        "encryption_key": os.getenv("ENCRYPTION_KEY"),
        "account_store": os.getenv("ACCOUNT_STORE"),
        "database_url": os.getenv("DATABASE_URL"),
    }
    filtered_values = {key: value for key, value in raw_values.items() if value is not None}
    return Settings(**filtered_values)


@lru_cache()
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return _build_settings()
