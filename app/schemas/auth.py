"""Request and response schemas for the account endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import EmailStr, Field, field_validator, model_validator

from app.schemas.profiles import (
    AccountProfile,
    AccountRole,
    CamelModel,
    CardStatus,
    PreferredLanguage,
)

NOTIFICATION_TOKEN_PATTERN = r"^[A-Za-z0-9\-_:.]+$"


class SignupRequest(CamelModel):
    """Signup form fields; the verification document travels as a separate file part."""

    first_name: str = Field(min_length=1, max_length=60)
    last_name: str = Field(min_length=1, max_length=60)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    confirm_password: str
    role: AccountRole = AccountRole.BUYER
    preferred_lang: PreferredLanguage = PreferredLanguage.EN
    phone_number: str | None = Field(default=None, max_length=32)
    shop_name: str | None = Field(default=None, max_length=120)
    shop_description: str | None = Field(default=None, max_length=2000)
    address: str | None = Field(default=None, max_length=500)
    categories: list[str] = Field(default_factory=list)
    id_type: str | None = Field(default=None, max_length=64)
    id_number: str | None = Field(default=None, max_length=128)

    @field_validator(
        "first_name",
        "last_name",
        "phone_number",
        "shop_name",
        "shop_description",
        "address",
        "id_type",
        "id_number",
        mode="before",
    )
    @classmethod
    def _strip_text(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("role", mode="before")
    @classmethod
    def _lowercase_role(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _passwords_match(self) -> SignupRequest:
        if self.confirm_password != self.password:
            raise ValueError("confirmPassword does not match password")
        return self


class VerifyCodeRequest(CamelModel):
    """Email plus the 6-digit code received by mail."""

    email: EmailStr
    code: str = Field(min_length=6, max_length=6, pattern=r"^\d{6}$")

    @field_validator("code", mode="before")
    @classmethod
    def _strip_code(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class LoginRequest(CamelModel):
    """Password login request payload."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class ForgetPasswordRequest(CamelModel):
    """Password reset request payload."""

    email: EmailStr


class ResetPasswordRequest(CamelModel):
    """Final password reset step payload."""

    email: EmailStr
    new_password: str = Field(min_length=8, max_length=128)
    confirm_new_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> ResetPasswordRequest:
        if self.confirm_new_password != self.new_password:
            raise ValueError("confirmNewPassword does not match newPassword")
        return self


class UpdateFcmTokenRequest(CamelModel):
    """Device notification token registration payload."""

    fcm_token: str = Field(min_length=16, max_length=2000, pattern=NOTIFICATION_TOKEN_PATTERN)


class SellerCardRequest(CamelModel):
    """Identity fields accompanying a later verification document submission."""

    id_type: str = Field(min_length=1, max_length=64)
    id_number: str = Field(min_length=1, max_length=128)


class CardReviewRequest(CamelModel):
    """Admin decision on a submitted verification card."""

    decision: Literal["verified", "rejected"]
    rejection_reason: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _reason_required_for_rejection(self) -> CardReviewRequest:
        if self.decision == CardStatus.REJECTED and not (self.rejection_reason or "").strip():
            raise ValueError("rejectionReason is required when rejecting a card")
        return self


class AccountResponse(CamelModel):
    """Public view of an account; never exposes hashes or device tokens."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    role: AccountRole
    preferred_lang: PreferredLanguage
    phone_number: str | None = None
    profile: AccountProfile
    created_at: datetime | None = None


class MessageResponse(CamelModel):
    """Plain acknowledgment envelope."""

    status: Literal["success"] = "success"
    message: str


class TokenResponse(CamelModel):
    """Acknowledgment carrying a session credential."""

    status: Literal["success"] = "success"
    message: str | None = None
    token: str


class AuthenticatedResponse(CamelModel):
    """Session credential together with the account it is bound to."""

    status: Literal["success"] = "success"
    message: str | None = None
    token: str
    user: AccountResponse


class AccountEnvelope(CamelModel):
    """Acknowledgment carrying an account view."""

    status: Literal["success"] = "success"
    message: str | None = None
    user: AccountResponse
