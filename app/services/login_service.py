"""Password login gate with the seller approval precondition."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.passwords import PasswordHasher, get_password_hasher
from app.models.account import Account
from app.schemas.profiles import SellerProfile
from app.services.account_store import AccountStore, get_account_store, normalize_email
from app.services.errors import InvalidCredentials, NotApproved
from app.services.token_service import TokenService, get_token_service

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """Authenticated account and its new session credential."""

    account: Account
    token: str


class LoginService:
    """Authenticate credentials and mint a session.

    Every path that finds an account performs exactly one bcrypt comparison and
    unknown emails perform a dummy one, so response timing does not depend on
    which check failed. An unapproved seller is refused with NotApproved
    whether or not the password matched.
    """

    def __init__(
        self,
        account_store: AccountStore,
        password_hasher: PasswordHasher,
        token_service: TokenService,
    ) -> None:
        self._accounts = account_store
        self._passwords = password_hasher
        self._tokens = token_service

    async def login(self, db_session: AsyncSession, email: str, password: str) -> LoginResult:
        account = await self._accounts.get_by_email(db_session, normalize_email(email))
        if account is None:
            self._passwords.dummy_verify()
            raise InvalidCredentials()

        password_matches = self._passwords.verify_password(password, account.password_hash)
        if account.is_seller and not self._seller_approved(account):
            logger.info("login_refused_unapproved_seller", account_id=str(account.id))
            raise NotApproved()
        if not password_matches:
            raise InvalidCredentials()

        logger.info("login_succeeded", account_id=str(account.id), role=account.role)
        return LoginResult(account=account, token=self._tokens.issue(account.id, account.role))

    @staticmethod
    def _seller_approved(account: Account) -> bool:
        profile = account.profile_document
        return isinstance(profile, SellerProfile) and profile.is_approved


@lru_cache
def get_login_service() -> LoginService:
    """Create and cache the login gate dependency."""
    return LoginService(
        account_store=get_account_store(),
        password_hasher=get_password_hasher(),
        token_service=get_token_service(),
    )
