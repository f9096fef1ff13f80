"""Pending verification store: one live code-gated record per (email, purpose)."""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pending_verification import PendingVerification, VerificationPurpose


class PendingVerificationStore(Protocol):
    """Persistence contract used by the verification workflow."""

    async def get(
        self,
        db_session: AsyncSession,
        email: str,
        purpose: VerificationPurpose,
    ) -> PendingVerification | None:
        """Fetch and lock the live record for the key, if any."""

    async def replace(
        self,
        db_session: AsyncSession,
        email: str,
        purpose: VerificationPurpose,
        code_hash: str,
        expires_at: datetime,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Atomically supersede any record for the key with a fresh unverified one."""

    async def mark_verified(self, db_session: AsyncSession, record: PendingVerification) -> None:
        """Flag a password-reset record as code-confirmed."""

    async def delete(self, db_session: AsyncSession, record: PendingVerification) -> None:
        """Remove a consumed or expired record."""

    async def purge_expired(self, db_session: AsyncSession, now: datetime) -> int:
        """Remove every record whose code expired before ``now``."""


class SqlPendingVerificationStore:
    """Postgres-backed store relying on the (email, purpose) unique constraint."""

    async def get(
        self,
        db_session: AsyncSession,
        email: str,
        purpose: VerificationPurpose,
    ) -> PendingVerification | None:
        statement = (
            select(PendingVerification)
            .where(
                PendingVerification.email == email,
                PendingVerification.purpose == purpose.value,
            )
            .with_for_update()
        )
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def replace(
        self,
        db_session: AsyncSession,
        email: str,
        purpose: VerificationPurpose,
        code_hash: str,
        expires_at: datetime,
        payload: dict[str, Any] | None = None,
    ) -> None:
        statement = insert(PendingVerification).values(
            email=email,
            purpose=purpose.value,
            code_hash=code_hash,
            expires_at=expires_at,
            verified=False,
            payload=payload,
        )
        statement = statement.on_conflict_do_update(
            constraint="uq_pending_verifications_email_purpose",
            set_={
                "code_hash": statement.excluded.code_hash,
                "expires_at": statement.excluded.expires_at,
                "verified": False,
                "payload": statement.excluded.payload,
                "created_at": func.now(),
                "updated_at": func.now(),
            },
        )
        await db_session.execute(statement)

    async def mark_verified(self, db_session: AsyncSession, record: PendingVerification) -> None:
        record.verified = True
        await db_session.flush()

    async def delete(self, db_session: AsyncSession, record: PendingVerification) -> None:
        await db_session.delete(record)
        await db_session.flush()

    async def purge_expired(self, db_session: AsyncSession, now: datetime) -> int:
        result = await db_session.execute(
            delete(PendingVerification).where(PendingVerification.expires_at < now)
        )
        return int(result.rowcount or 0)


@lru_cache
def get_pending_verification_store() -> PendingVerificationStore:
    """Provide the shared pending verification store."""
    return SqlPendingVerificationStore()
