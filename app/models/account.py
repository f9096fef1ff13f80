"""Account ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import TypeAdapter
from sqlalchemy import CheckConstraint, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin
from app.schemas.profiles import (
    AccountProfile,
    AccountRole,
    AdminProfile,
    BuyerProfile,
    SellerProfile,
)

_PROFILE_ADAPTER: TypeAdapter[SellerProfile | BuyerProfile | AdminProfile] = TypeAdapter(
    AccountProfile
)


class Account(Base, TimestampMixin):
    """Permanent marketplace account; owns its role-specific profile document."""

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("role IN ('buyer', 'seller', 'admin')", name="role_allowed"),
        CheckConstraint("profile ->> 'role' = role", name="profile_matches_role"),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    first_name: Mapped[str] = mapped_column(String(60), nullable=False)
    last_name: Mapped[str] = mapped_column(String(60), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    preferred_language: Mapped[str] = mapped_column(String(8), nullable=False, default="en")
    notification_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    password_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    profile: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    @property
    def profile_document(self) -> SellerProfile | BuyerProfile | AdminProfile:
        """Parse the stored profile into its role variant."""
        return _PROFILE_ADAPTER.validate_python(self.profile)

    def set_profile(self, profile: SellerProfile | BuyerProfile | AdminProfile) -> None:
        """Replace the profile document, keeping it consistent with the role."""
        if profile.role != self.role:
            raise ValueError("Profile variant does not match account role.")
        self.profile = profile.model_dump(mode="json")

    @property
    def is_seller(self) -> bool:
        """Return True for seller accounts."""
        return self.role == AccountRole.SELLER

    @property
    def is_admin(self) -> bool:
        """Return True for admin accounts."""
        return self.role == AccountRole.ADMIN
