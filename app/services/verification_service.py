"""Code-gated signup and password reset workflow.

Each (email, purpose) pair moves through ``NONE -> PENDING`` and leaves the
pending state by being consumed, expiring (detected lazily on read), or being
superseded by a newer request. Accounts are only created from a consumed
email verification record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.codes import CodeGenerator, get_code_generator
from app.core.email import EmailDeliveryError, EmailSender, get_email_sender
from app.core.passwords import PasswordHasher, get_password_hasher
from app.models.account import Account
from app.models.pending_verification import PendingVerification, VerificationPurpose
from app.schemas.auth import SignupRequest
from app.schemas.profiles import (
    AccountRole,
    BuyerAddress,
    BuyerProfile,
    CardStatus,
    PendingSignupPayload,
    SellerProfile,
    VerificationCard,
)
from app.services.account_store import AccountStore, get_account_store, normalize_email
from app.services.errors import (
    AccountNotFound,
    CodeExpired,
    DependencyFailure,
    EmailTaken,
    InvalidCode,
    InvalidRole,
    ResetNotVerified,
    VerificationNotFound,
)
from app.services.pending_store import PendingVerificationStore, get_pending_verification_store
from app.services.token_service import TokenService, get_token_service

logger = structlog.get_logger(__name__)

DEFAULT_ID_TYPE = "national_id"
DEFAULT_ID_NUMBER = "unknown"


@dataclass(frozen=True)
class EmailConfirmation:
    """Outcome of a consumed signup code.

    ``token`` is None when the new account must wait for manual approval.
    """

    account: Account
    token: str | None

    @property
    def awaiting_approval(self) -> bool:
        return self.token is None


class VerificationService:
    """Orchestrates code issuance, validation, and promotion into accounts."""

    def __init__(
        self,
        account_store: AccountStore,
        pending_store: PendingVerificationStore,
        code_generator: CodeGenerator,
        password_hasher: PasswordHasher,
        email_sender: EmailSender,
        token_service: TokenService,
    ) -> None:
        self._accounts = account_store
        self._pending = pending_store
        self._codes = code_generator
        self._passwords = password_hasher
        self._email_sender = email_sender
        self._tokens = token_service

    async def request_email_verification(
        self,
        db_session: AsyncSession,
        fields: SignupRequest,
        uploaded_document_url: str | None = None,
    ) -> None:
        """Hold signup data back behind an emailed code."""
        if fields.role == AccountRole.ADMIN:
            raise InvalidRole()
        email = normalize_email(fields.email)
        if await self._accounts.get_by_email(db_session, email) is not None:
            raise EmailTaken()

        payload = self._build_signup_payload(fields, email, uploaded_document_url)
        issued = self._codes.generate()
        body = (
            f"Hi {payload.first_name} {payload.last_name},\n"
            f"Your verification code is:\n{issued.plaintext}\n(valid for 10 minutes)\n"
        )
        try:
            await self._pending.replace(
                db_session,
                email=email,
                purpose=VerificationPurpose.EMAIL_VERIFICATION,
                code_hash=issued.code_hash,
                expires_at=issued.expires_at,
                payload=payload.model_dump(mode="json"),
            )
            await self._send(email, "Email Verification Code", body)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info(
            "signup_verification_requested",
            role=payload.role.value,
            document_attached=uploaded_document_url is not None,
        )

    async def confirm_email_verification(
        self,
        db_session: AsyncSession,
        email: str,
        code: str,
    ) -> EmailConfirmation:
        """Consume a signup code and create the permanent account."""
        record = await self._load_live_record(
            db_session,
            normalize_email(email),
            VerificationPurpose.EMAIL_VERIFICATION,
            missing=VerificationNotFound(),
            expired=CodeExpired(),
        )
        if not self._codes.matches(code, record.code_hash):
            await db_session.rollback()
            raise InvalidCode()

        payload = record.signup_payload()
        try:
            account = await self._accounts.add(db_session, self._account_from_payload(payload))
            await self._pending.delete(db_session, record)
            awaiting_approval = isinstance(payload.profile, SellerProfile) and (
                payload.profile.awaits_review
            )
            if awaiting_approval:
                await self._send(
                    account.email,
                    "Account Created - Pending Approval",
                    f"Hi {account.first_name} {account.last_name},\n"
                    "Your account has been created and is pending approval. "
                    "You will be notified once it is reviewed.\n",
                )
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

        logger.info(
            "account_created",
            account_id=str(account.id),
            role=account.role,
            awaiting_approval=awaiting_approval,
        )
        if awaiting_approval:
            return EmailConfirmation(account=account, token=None)
        return EmailConfirmation(account=account, token=self._tokens.issue(account.id, account.role))

    async def request_password_reset(self, db_session: AsyncSession, email: str) -> None:
        """Email a reset code; unknown emails get the same acknowledgment and no record."""
        normalized = normalize_email(email)
        account = await self._accounts.get_by_email(db_session, normalized)
        issued = self._codes.generate()
        if account is None:
            logger.info("password_reset_requested_for_unknown_email")
            return

        body = f"Your password reset code is:\n{issued.plaintext}\n(valid for 10 minutes)\n"
        try:
            await self._pending.replace(
                db_session,
                email=normalized,
                purpose=VerificationPurpose.PASSWORD_RESET,
                code_hash=issued.code_hash,
                expires_at=issued.expires_at,
            )
            await self._send(normalized, "Password Reset Code", body)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info("password_reset_requested", account_id=str(account.id))

    async def confirm_password_reset_code(
        self,
        db_session: AsyncSession,
        email: str,
        code: str,
    ) -> None:
        """Mark the reset record as code-confirmed without consuming it."""
        record = await self._load_live_record(
            db_session,
            normalize_email(email),
            VerificationPurpose.PASSWORD_RESET,
            missing=VerificationNotFound("No reset request found."),
            expired=CodeExpired(),
        )
        if not self._codes.matches(code, record.code_hash):
            await db_session.rollback()
            raise InvalidCode("Invalid reset code.")
        try:
            await self._pending.mark_verified(db_session, record)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    async def complete_password_reset(
        self,
        db_session: AsyncSession,
        email: str,
        new_password: str,
    ) -> str:
        """Consume a confirmed reset record, set the new password, and issue a session."""
        normalized = normalize_email(email)
        record = await self._pending.get(db_session, normalized, VerificationPurpose.PASSWORD_RESET)
        if record is None or not record.verified:
            await db_session.rollback()
            raise ResetNotVerified()
        if record.is_expired(datetime.now(UTC)):
            await self._discard(db_session, record)
            raise CodeExpired("Reset request expired.")

        account = await self._accounts.get_by_email(db_session, normalized)
        if account is None:
            await db_session.rollback()
            raise AccountNotFound("User not found.")

        try:
            account.password_hash = self._passwords.hash_password(new_password)
            account.password_changed_at = datetime.now(UTC)
            await self._accounts.save(db_session, account)
            await self._pending.delete(db_session, record)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info("password_reset_completed", account_id=str(account.id))
        return self._tokens.issue(account.id, account.role)

    async def _load_live_record(
        self,
        db_session: AsyncSession,
        email: str,
        purpose: VerificationPurpose,
        missing: Exception,
        expired: Exception,
    ) -> PendingVerification:
        """Return the unexpired record or raise; expired records are deleted on read."""
        record = await self._pending.get(db_session, email, purpose)
        if record is None:
            await db_session.rollback()
            raise missing
        if record.is_expired(datetime.now(UTC)):
            await self._discard(db_session, record)
            raise expired
        return record

    async def _discard(self, db_session: AsyncSession, record: PendingVerification) -> None:
        try:
            await self._pending.delete(db_session, record)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise
        logger.info("pending_verification_expired", purpose=record.purpose)

    async def _send(self, to_email: str, subject: str, body: str) -> None:
        try:
            await self._email_sender.send(to_email=to_email, subject=subject, body=body)
        except EmailDeliveryError as exc:
            logger.error("email_delivery_failed", subject=subject, error=str(exc))
            raise DependencyFailure("Error sending email.") from exc

    def _build_signup_payload(
        self,
        fields: SignupRequest,
        email: str,
        uploaded_document_url: str | None,
    ) -> PendingSignupPayload:
        """Copy only allow-listed fields; profile state is never taken from the client."""
        if fields.role == AccountRole.SELLER:
            card = None
            if uploaded_document_url:
                card = VerificationCard(
                    id_type=fields.id_type or DEFAULT_ID_TYPE,
                    id_number=fields.id_number or DEFAULT_ID_NUMBER,
                    document_url=uploaded_document_url,
                    submitted_at=datetime.now(UTC),
                    status=CardStatus.SUBMITTED,
                )
            profile: SellerProfile | BuyerProfile = SellerProfile(
                shop_name=fields.shop_name or f"{fields.first_name or 'Seller'} Shop",
                shop_description=fields.shop_description,
                address=fields.address,
                categories=[category.strip() for category in fields.categories if category.strip()],
                verification_card=card,
            )
        else:
            profile = BuyerProfile(
                phone_number=fields.phone_number,
                address=BuyerAddress(street=fields.address) if fields.address else None,
            )

        return PendingSignupPayload(
            first_name=fields.first_name,
            last_name=fields.last_name,
            email=email,
            password_hash=self._passwords.hash_password(fields.password),
            preferred_language=fields.preferred_lang,
            phone_number=fields.phone_number,
            profile=profile,
        )

    @staticmethod
    def _account_from_payload(payload: PendingSignupPayload) -> Account:
        account = Account(
            email=payload.email,
            password_hash=payload.password_hash,
            role=payload.role.value,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone_number=payload.phone_number,
            preferred_language=payload.preferred_language.value,
        )
        account.set_profile(payload.profile)
        return account


@lru_cache
def get_verification_service() -> VerificationService:
    """Create and cache the verification workflow dependency."""
    return VerificationService(
        account_store=get_account_store(),
        pending_store=get_pending_verification_store(),
        code_generator=get_code_generator(),
        password_hasher=get_password_hasher(),
        email_sender=get_email_sender(),
        token_service=get_token_service(),
    )
