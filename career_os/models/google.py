"""Google account credential storage model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from career_os.models.base import Base


class GoogleAccount(Base):
    """Encrypted Google OAuth credentials for one external identity."""

    __tablename__ = "google_accounts"

    subject: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    access_token: Mapped[str] = mapped_column(Text(), nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text(), nullable=True)
    expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    granted_scopes: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
