"""Pending verification ORM model: code-gated signup and password reset intents."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin
from app.schemas.profiles import PendingSignupPayload


class VerificationPurpose(StrEnum):
    """What a pending code unlocks once confirmed."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class PendingVerification(Base, TimestampMixin):
    """At most one live row per (email, purpose); replaced on every new request."""

    __tablename__ = "pending_verifications"
    __table_args__ = (
        UniqueConstraint("email", "purpose", name="uq_pending_verifications_email_purpose"),
        CheckConstraint(
            "purpose IN ('email_verification', 'password_reset')", name="purpose_allowed"
        ),
        CheckConstraint(
            "(purpose = 'email_verification') = (payload IS NOT NULL)",
            name="payload_only_for_signup",
        ),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    def is_expired(self, now: datetime) -> bool:
        """Return True once the code lifetime has elapsed."""
        return now > self.expires_at

    def signup_payload(self) -> PendingSignupPayload:
        """Decode the held-back account data of an email verification row."""
        if self.purpose != VerificationPurpose.EMAIL_VERIFICATION or self.payload is None:
            raise ValueError("Only email verification rows carry a signup payload.")
        return PendingSignupPayload.model_validate(self.payload)
