"""One-time numeric verification codes with bcrypt hashing and fixed expiry."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache

from passlib.context import CryptContext

from app.config import get_settings

CODE_LENGTH = 6


@dataclass(frozen=True)
class IssuedCode:
    """Freshly generated code; ``plaintext`` must only be emailed, never stored."""

    plaintext: str
    code_hash: str
    expires_at: datetime


class CodeGenerator:
    """Generate and check 6-digit single-use codes."""

    def __init__(self, ttl_seconds: int = 600, hash_rounds: int = 12) -> None:
        if hash_rounds < 12:
            raise ValueError("Code hash rounds must be at least 12.")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=hash_rounds,
        )

    def generate(self) -> IssuedCode:
        """Draw a uniform code in 000000..999999 and hash it."""
        plaintext = f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"
        return IssuedCode(
            plaintext=plaintext,
            code_hash=str(self._context.hash(plaintext)),
            expires_at=datetime.now(UTC) + self._ttl,
        )

    def matches(self, code: str, code_hash: str) -> bool:
        """Compare a submitted code against its stored hash."""
        return bool(self._context.verify(code.strip(), code_hash))


@lru_cache
def get_code_generator() -> CodeGenerator:
    """Build and cache the code generator from settings."""
    settings = get_settings()
    return CodeGenerator(
        ttl_seconds=settings.verification.code_ttl_seconds,
        hash_rounds=settings.verification.code_hash_rounds,
    )
