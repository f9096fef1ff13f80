"""ORM model exports."""

from app.models.account import Account
from app.models.pending_verification import PendingVerification, VerificationPurpose

__all__ = ["Account", "PendingVerification", "VerificationPurpose"]
