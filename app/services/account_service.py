"""Post-signup account management: device tokens, seller cards, admin review."""

from __future__ import annotations

from datetime import UTC, datetime
from functools import lru_cache
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.notification_tokens import NotificationTokenCipher, get_notification_token_cipher
from app.core.passwords import PasswordHasher, get_password_hasher
from app.models.account import Account
from app.schemas.profiles import (
    AccountRole,
    AdminProfile,
    CardStatus,
    SellerProfile,
    VerificationCard,
)
from app.services.account_store import AccountStore, get_account_store, normalize_email
from app.services.errors import (
    AccountNotFound,
    CardAlreadySubmitted,
    CardNotReviewable,
    EmailTaken,
    Forbidden,
)

logger = structlog.get_logger(__name__)


class AccountService:
    """Mutations on existing accounts outside the code-gated flows."""

    def __init__(
        self,
        account_store: AccountStore,
        token_cipher: NotificationTokenCipher,
        password_hasher: PasswordHasher,
    ) -> None:
        self._accounts = account_store
        self._cipher = token_cipher
        self._passwords = password_hasher

    async def update_notification_token(
        self,
        db_session: AsyncSession,
        account: Account,
        token: str,
    ) -> None:
        """Store the device token encrypted."""
        account.notification_token = self._cipher.encrypt(token)
        try:
            await self._accounts.save(db_session, account)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info("notification_token_updated", account_id=str(account.id))

    async def submit_verification_card(
        self,
        db_session: AsyncSession,
        account: Account,
        id_type: str,
        id_number: str,
        document_url: str,
    ) -> Account:
        """Attach a card to a seller with none yet, or replace a rejected one."""
        profile = self._seller_profile(account)
        if profile is None:
            raise Forbidden("Only sellers can upload verification documents.")
        card = profile.verification_card
        if card is not None and card.status not in {CardStatus.UNVERIFIED, CardStatus.REJECTED}:
            raise CardAlreadySubmitted()

        profile.verification_card = VerificationCard(
            id_type=id_type,
            id_number=id_number,
            document_url=document_url,
            submitted_at=datetime.now(UTC),
            status=CardStatus.SUBMITTED,
        )
        account.set_profile(profile)
        try:
            await self._accounts.save(db_session, account)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info("verification_card_submitted", account_id=str(account.id))
        return account

    async def review_verification_card(
        self,
        db_session: AsyncSession,
        reviewer: Account,
        seller_id: UUID,
        decision: CardStatus,
        rejection_reason: str | None = None,
    ) -> Account:
        """Move a submitted card to verified or rejected on behalf of an admin."""
        if not reviewer.is_admin:
            raise Forbidden()
        if decision not in {CardStatus.VERIFIED, CardStatus.REJECTED}:
            raise CardNotReviewable("Decision must be verified or rejected.")

        seller = await self._accounts.get_by_id(db_session, seller_id)
        profile = self._seller_profile(seller) if seller is not None else None
        if seller is None or profile is None:
            raise AccountNotFound("Seller not found.")
        card = profile.verification_card
        if card is None or card.status != CardStatus.SUBMITTED:
            raise CardNotReviewable()

        card.status = decision
        card.verified_by = reviewer.id
        card.verified_at = datetime.now(UTC)
        card.rejection_reason = rejection_reason if decision == CardStatus.REJECTED else None
        seller.set_profile(profile)
        try:
            await self._accounts.save(db_session, seller)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info(
            "verification_card_reviewed",
            account_id=str(seller.id),
            reviewer_id=str(reviewer.id),
            decision=decision.value,
        )
        return seller

    async def create_admin(
        self,
        db_session: AsyncSession,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> Account:
        """Create an admin account directly; admins cannot self-register."""
        normalized = normalize_email(email)
        if await self._accounts.get_by_email(db_session, normalized) is not None:
            raise EmailTaken()
        account = Account(
            email=normalized,
            password_hash=self._passwords.hash_password(password),
            role=AccountRole.ADMIN.value,
            first_name=first_name,
            last_name=last_name,
            preferred_language="en",
        )
        account.set_profile(AdminProfile())
        try:
            await self._accounts.add(db_session, account)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info("admin_created", account_id=str(account.id))
        return account

    @staticmethod
    def _seller_profile(account: Account) -> SellerProfile | None:
        profile = account.profile_document
        return profile if isinstance(profile, SellerProfile) else None


@lru_cache
def get_account_service() -> AccountService:
    """Create and cache the account service dependency."""
    return AccountService(
        account_store=get_account_store(),
        token_cipher=get_notification_token_cipher(),
        password_hasher=get_password_hasher(),
    )
