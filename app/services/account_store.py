"""Account store: permanent accounts keyed by id and unique email."""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import Account
from app.services.errors import EmailTaken


class AccountStore(Protocol):
    """Persistence contract for accounts."""

    async def get_by_email(self, db_session: AsyncSession, email: str) -> Account | None:
        """Fetch an account by case-insensitive email."""

    async def get_by_id(self, db_session: AsyncSession, account_id: UUID) -> Account | None:
        """Fetch an account by id."""

    async def add(self, db_session: AsyncSession, account: Account) -> Account:
        """Insert a new account; raise EmailTaken on a duplicate email."""

    async def save(self, db_session: AsyncSession, account: Account) -> None:
        """Flush pending changes of an already stored account."""


class SqlAccountStore:
    """SQLAlchemy implementation of the account store."""

    async def get_by_email(self, db_session: AsyncSession, email: str) -> Account | None:
        statement = select(Account).where(func.lower(Account.email) == email.lower())
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_id(self, db_session: AsyncSession, account_id: UUID) -> Account | None:
        statement = select(Account).where(Account.id == account_id)
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def add(self, db_session: AsyncSession, account: Account) -> Account:
        db_session.add(account)
        try:
            await db_session.flush()
        except IntegrityError as exc:
            raise EmailTaken() from exc
        return account

    async def save(self, db_session: AsyncSession, account: Account) -> None:
        await db_session.flush()


@lru_cache
def get_account_store() -> AccountStore:
    """Provide the shared account store."""
    return SqlAccountStore()


def normalize_email(email: str) -> str:
    """Canonical form used as the account and pending-record key."""
    return email.strip().lower()
