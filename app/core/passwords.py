"""Password hashing primitive."""

from __future__ import annotations

from functools import lru_cache

from passlib.context import CryptContext


class PasswordHasher:
    """bcrypt password hashing with a dummy path for unknown accounts."""

    def __init__(self, rounds: int = 12) -> None:
        self._password_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash_password(self, password: str) -> str:
        """Generate a bcrypt hash for the provided password."""
        return str(self._password_context.hash(password))

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a plaintext password against the stored bcrypt hash."""
        return bool(self._password_context.verify(password, password_hash))

    def dummy_verify(self) -> None:
        """Spend a hash comparison so unknown emails cost the same as known ones."""
        self._password_context.dummy_verify()


@lru_cache
def get_password_hasher() -> PasswordHasher:
    """Provide the shared password hasher."""
    return PasswordHasher()
