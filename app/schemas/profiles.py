"""Role-specific profile documents embedded in account rows.

An account carries exactly one profile variant, discriminated by ``role``. The
pending signup payload reuses the same variants so that nothing outside this
allow-listed shape can reach a permanent account.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class AccountRole(StrEnum):
    """Account kinds known to the marketplace."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class PreferredLanguage(StrEnum):
    """Languages the client can render."""

    EN = "en"
    AR = "ar"


class CardStatus(StrEnum):
    """Human-review states of a seller verification card."""

    UNVERIFIED = "unverified"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases while accepting field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VerificationCard(CamelModel):
    """A seller identity document submission and its review state."""

    id_type: str = Field(min_length=1, max_length=64)
    id_number: str = Field(min_length=1, max_length=128)
    document_url: str = Field(min_length=1)
    submitted_at: datetime
    status: CardStatus = CardStatus.SUBMITTED
    verified_by: UUID | None = None
    verified_at: datetime | None = None
    rejection_reason: str | None = None


class WorkingHours(CamelModel):
    """Daily shop opening window."""

    open: str = "09:00"
    close: str = "21:00"


class SellerProfile(CamelModel):
    """Shop metadata owned by a seller account."""

    role: Literal["seller"] = "seller"
    shop_name: str = Field(min_length=1, max_length=120)
    shop_description: str | None = None
    address: str | None = None
    categories: list[str] = Field(default_factory=list)
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    rating: float = 0
    total_sales: int = 0
    verification_card: VerificationCard | None = None

    @property
    def is_approved(self) -> bool:
        """Return True once a human verified the identity document."""
        card = self.verification_card
        return card is not None and card.status == CardStatus.VERIFIED

    @property
    def awaits_review(self) -> bool:
        """Return True while a submitted card waits for a reviewer."""
        card = self.verification_card
        return card is not None and card.status == CardStatus.SUBMITTED


class BuyerAddress(CamelModel):
    """Delivery address of a buyer."""

    country: str = "Egypt"
    city: str | None = None
    street: str | None = None
    building: str | None = None
    floor: str | None = None
    apartment: str | None = None
    postal_code: str | None = None


class BuyerProfile(CamelModel):
    """Shopping preferences owned by a buyer account."""

    role: Literal["buyer"] = "buyer"
    phone_number: str | None = None
    address: BuyerAddress | None = None
    preferred_payment_method: str | None = None
    preferred_categories: list[str] = Field(default_factory=list)


class AdminProfile(CamelModel):
    """Admins carry no marketplace profile data."""

    role: Literal["admin"] = "admin"


AccountProfile = Annotated[
    SellerProfile | BuyerProfile | AdminProfile,
    Field(discriminator="role"),
]


class PendingSignupPayload(CamelModel):
    """Account data held back until the signup email is confirmed."""

    first_name: str
    last_name: str
    email: str
    password_hash: str
    preferred_language: PreferredLanguage = PreferredLanguage.EN
    phone_number: str | None = None
    profile: AccountProfile

    @model_validator(mode="after")
    def _reject_admin_profile(self) -> PendingSignupPayload:
        if self.profile.role == AccountRole.ADMIN:
            raise ValueError("Admin accounts cannot be self-registered.")
        return self

    @property
    def role(self) -> AccountRole:
        """Role the account will be created with."""
        return AccountRole(self.profile.role)
