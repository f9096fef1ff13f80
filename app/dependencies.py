"""Shared FastAPI dependency helpers."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.jwt import JWTService, TokenValidationError, get_jwt_service
from app.db.session import get_db_session
from app.models.account import Account
from app.services.account_store import AccountStore, get_account_store
from app.services.errors import InvalidToken


async def get_database_session() -> AsyncGenerator[AsyncSession, None]:
    """Expose the request-scoped async database session dependency."""
    async for session in get_db_session():
        yield session


def _extract_bearer_token(request: Request) -> str | None:
    """Extract bearer token from Authorization header."""
    authorization = request.headers.get("authorization", "").strip()
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    cleaned = token.strip()
    return cleaned or None


async def get_current_account(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    jwt_service: Annotated[JWTService, Depends(get_jwt_service)],
    account_store: Annotated[AccountStore, Depends(get_account_store)],
) -> Account:
    """Resolve the bearer token into its account.

    Tokens issued before the last password change are refused.
    """
    token = _extract_bearer_token(request)
    if token is None:
        raise InvalidToken("You are not logged in, please login to access this route.")
    try:
        claims = jwt_service.verify_token(token, expected_type="access")
        account_id = UUID(str(claims["sub"]))
    except TokenValidationError as exc:
        raise InvalidToken(exc.detail) from exc
    except ValueError as exc:
        raise InvalidToken() from exc

    account = await account_store.get_by_id(db_session, account_id)
    if account is None:
        raise InvalidToken("The account that belongs to this token no longer exists.")
    changed_at = account.password_changed_at
    if changed_at is not None and int(claims["iat"]) < int(changed_at.timestamp()):
        raise InvalidToken("Password was recently changed, please login again.")
    request.state.user = {"user_id": str(account.id), "email": account.email}
    return account
