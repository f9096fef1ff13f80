"""In-memory doubles shared by workflow unit tests."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from app.core.codes import CodeGenerator
from app.core.email import EmailDeliveryError
from app.core.jwt import JWTService
from app.core.passwords import PasswordHasher
from app.models.account import Account
from app.models.pending_verification import PendingVerification, VerificationPurpose
from app.services.errors import EmailTaken
from app.services.token_service import TokenService

_CODE_IN_BODY = re.compile(r"^(\d{6})$", re.MULTILINE)


class FakeDatabase:
    """Stands in for AsyncSession: commit snapshots rows, rollback restores them."""

    def __init__(self) -> None:
        self.accounts: dict[UUID, Account] = {}
        self.pending: dict[tuple[str, str], PendingVerification] = {}
        self.commits = 0
        self.rollbacks = 0
        self._snapshot: tuple[dict[UUID, Account], dict[tuple[str, str], PendingVerification]] = (
            {},
            {},
        )

    async def commit(self) -> None:
        self.commits += 1
        self._snapshot = (dict(self.accounts), dict(self.pending))

    async def rollback(self) -> None:
        self.rollbacks += 1
        self.accounts = dict(self._snapshot[0])
        self.pending = dict(self._snapshot[1])

    async def flush(self) -> None:
        return None


class FakeAccountStore:
    """Account store over FakeDatabase rows."""

    async def get_by_email(self, db_session: FakeDatabase, email: str) -> Account | None:
        for account in db_session.accounts.values():
            if account.email == email.lower():
                return account
        return None

    async def get_by_id(self, db_session: FakeDatabase, account_id: UUID) -> Account | None:
        return db_session.accounts.get(account_id)

    async def add(self, db_session: FakeDatabase, account: Account) -> Account:
        if await self.get_by_email(db_session, account.email) is not None:
            raise EmailTaken()
        if account.id is None:
            account.id = uuid4()
        if account.created_at is None:
            account.created_at = datetime.now(UTC)
        db_session.accounts[account.id] = account
        return account

    async def save(self, db_session: FakeDatabase, account: Account) -> None:
        db_session.accounts[account.id] = account


class FakePendingStore:
    """Pending verification store keyed by (email, purpose)."""

    async def get(
        self,
        db_session: FakeDatabase,
        email: str,
        purpose: VerificationPurpose,
    ) -> PendingVerification | None:
        return db_session.pending.get((email, purpose.value))

    async def replace(
        self,
        db_session: FakeDatabase,
        email: str,
        purpose: VerificationPurpose,
        code_hash: str,
        expires_at: datetime,
        payload: dict[str, Any] | None = None,
    ) -> None:
        db_session.pending[(email, purpose.value)] = PendingVerification(
            id=uuid4(),
            email=email,
            purpose=purpose.value,
            code_hash=code_hash,
            expires_at=expires_at,
            verified=False,
            payload=payload,
        )

    async def mark_verified(self, db_session: FakeDatabase, record: PendingVerification) -> None:
        record.verified = True

    async def delete(self, db_session: FakeDatabase, record: PendingVerification) -> None:
        db_session.pending.pop((record.email, record.purpose), None)

    async def purge_expired(self, db_session: FakeDatabase, now: datetime) -> int:
        expired = [key for key, record in db_session.pending.items() if record.expires_at < now]
        for key in expired:
            del db_session.pending[key]
        return len(expired)


@dataclass
class SentEmail:
    to_email: str
    subject: str
    body: str

    @property
    def code(self) -> str:
        match = _CODE_IN_BODY.search(self.body)
        assert match is not None, self.body
        return match.group(1)


@dataclass
class CapturingEmailSender:
    """Records outgoing mail; ``fail`` simulates an unreachable SMTP relay."""

    messages: list[SentEmail] = field(default_factory=list)
    fail: bool = False

    async def send(self, to_email: str, subject: str, body: str) -> None:
        if self.fail:
            raise EmailDeliveryError("relay unavailable")
        self.messages.append(SentEmail(to_email=to_email, subject=subject, body=body))

    def last_to(self, to_email: str) -> SentEmail:
        return [message for message in self.messages if message.to_email == to_email][-1]


def _generate_keypair() -> tuple[str, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )
    return private_pem, public_pem


@pytest.fixture(scope="session")
def rsa_keypair() -> tuple[str, str]:
    """One ephemeral RSA keypair per test session."""
    return _generate_keypair()


@pytest.fixture
def jwt_service(rsa_keypair: tuple[str, str]) -> JWTService:
    private_pem, public_pem = rsa_keypair
    return JWTService(private_key_pem=private_pem, public_key_pem=public_pem)


@pytest.fixture
def token_service(jwt_service: JWTService) -> TokenService:
    return TokenService(jwt_service=jwt_service, access_token_ttl_seconds=3600)


@pytest.fixture
def password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def code_generator() -> CodeGenerator:
    return CodeGenerator(ttl_seconds=600, hash_rounds=12)


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def account_store() -> FakeAccountStore:
    return FakeAccountStore()


@pytest.fixture
def pending_store() -> FakePendingStore:
    return FakePendingStore()


@pytest.fixture
def email_sender() -> CapturingEmailSender:
    return CapturingEmailSender()
