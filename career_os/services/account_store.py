"""Credential records and the stores that hold them."""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from career_os.models import GoogleAccount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    """Stored, encrypted representation of one user's Google tokens.

    ``access_token`` and ``refresh_token`` always hold cipher envelopes,
    never plaintext.
    """

    subject: str
    email: str
    access_token: str
    refresh_token: str | None = None
    expiry: datetime | None = None
    granted_scopes: str = ""
    last_synced_at: datetime = dataclasses.field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


def merge_records(existing: CredentialRecord | None, incoming: CredentialRecord) -> CredentialRecord:
    """Combine an incoming record with what is already stored for the subject.

    The access token, expiry and sync time always come from ``incoming``. The
    refresh token is only replaced when a new one was issued, and the email
    and scopes are kept when the incoming record leaves them empty.
    """

    if existing is None:
        return incoming
    if existing.subject != incoming.subject:
        raise ValueError("Cannot merge credential records for different subjects")
    return dataclasses.replace(
        incoming,
        email=incoming.email or existing.email,
        refresh_token=incoming.refresh_token or existing.refresh_token,
        granted_scopes=incoming.granted_scopes or existing.granted_scopes,
    )


class AccountStore(Protocol):
    """Storage capability needed by the OAuth session manager."""

    async def get(self, subject: str) -> CredentialRecord | None: ...

    async def upsert(self, record: CredentialRecord) -> CredentialRecord: ...


class InMemoryAccountStore:
    """Process-lifetime store; a restart loses every stored credential."""

    def __init__(self) -> None:
        self._records: dict[str, CredentialRecord] = {}

    async def get(self, subject: str) -> CredentialRecord | None:
        return self._records.get(subject)

    async def upsert(self, record: CredentialRecord) -> CredentialRecord:
        merged = merge_records(self._records.get(record.subject), record)
        self._records[record.subject] = merged
        return merged

    def __len__(self) -> int:
        return len(self._records)


class SQLAlchemyAccountStore:
    """Durable store persisting records in the ``google_accounts`` table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def get(self, subject: str) -> CredentialRecord | None:
        async with self._sessionmaker() as session:
            account = await session.get(GoogleAccount, subject)
            if account is None:
                return None
            return _to_record(account)

    async def upsert(self, record: CredentialRecord) -> CredentialRecord:
        async with self._sessionmaker() as session:
            account = await session.get(GoogleAccount, record.subject)
            existing = _to_record(account) if account is not None else None
            merged = merge_records(existing, record)

            if account is None:
                account = GoogleAccount(subject=merged.subject)
                session.add(account)
            account.email = merged.email
            account.access_token = merged.access_token
            account.refresh_token = merged.refresh_token
            account.expiry = merged.expiry
            account.granted_scopes = merged.granted_scopes
            account.last_synced_at = merged.last_synced_at

            await session.commit()
        logger.info("Stored Google credentials", extra={"subject": merged.subject})
        return merged


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(account: GoogleAccount) -> CredentialRecord:
    return CredentialRecord(
        subject=account.subject,
        email=account.email,
        access_token=account.access_token,
        refresh_token=account.refresh_token,
        expiry=_as_utc(account.expiry),
        granted_scopes=account.granted_scopes or "",
        last_synced_at=_as_utc(account.last_synced_at) or datetime.now(timezone.utc),
    )
