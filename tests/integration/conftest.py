"""Shared integration-test fixtures using a Postgres testcontainer."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import pytest
from alembic import command
from alembic.config import Config
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from testcontainers.postgres import PostgresContainer

from docker.errors import DockerException


def _generate_rsa_keypair() -> tuple[str, str]:
    """Generate PEM-encoded RSA private/public keypair for integration settings."""
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


def _clear_dependency_caches() -> None:
    """Clear every lru-cached singleton so settings changes take effect."""
    from app.config import get_settings
    from app.core.codes import get_code_generator
    from app.core.email import get_email_sender
    from app.core.jwt import get_jwt_service
    from app.core.notification_tokens import get_notification_token_cipher
    from app.core.passwords import get_password_hasher
    from app.core.uploads import get_document_uploader
    from app.db.session import get_engine, get_session_factory
    from app.services.account_service import get_account_service
    from app.services.account_store import get_account_store
    from app.services.login_service import get_login_service
    from app.services.pending_store import get_pending_verification_store
    from app.services.token_service import get_token_service
    from app.services.verification_service import get_verification_service

    for cached in (
        get_settings,
        get_engine,
        get_session_factory,
        get_jwt_service,
        get_code_generator,
        get_email_sender,
        get_notification_token_cipher,
        get_password_hasher,
        get_document_uploader,
        get_account_store,
        get_pending_verification_store,
        get_token_service,
        get_verification_service,
        get_login_service,
        get_account_service,
    ):
        cached.cache_clear()


async def _dispose_async_singletons() -> None:
    """Dispose loop-bound async resources before changing event loops."""
    from app.db.session import dispose_engine, get_engine

    if get_engine.cache_info().currsize:
        await dispose_engine()


def _postgres_async_url(postgres: PostgresContainer) -> str:
    """Return a postgresql+asyncpg URL across testcontainers versions."""
    try:
        postgres_url = postgres.get_connection_url(driver=None)
    except TypeError:
        postgres_url = postgres.get_connection_url()

    if postgres_url.startswith("postgresql+"):
        postgres_url = "postgresql://" + postgres_url.split("://", 1)[1]

    return postgres_url.replace("postgresql://", "postgresql+asyncpg://", 1)


def _set_env_values(env_values: dict[str, str]) -> Callable[[], None]:
    """Apply env vars and return a restore callback."""
    previous = {key: os.environ.get(key) for key in env_values}
    os.environ.update(env_values)

    def _restore() -> None:
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    return _restore


@pytest.fixture(scope="session")
def integration_env() -> Iterator[dict[str, str]]:
    """Start Postgres and configure app settings for integration tests."""
    try:
        postgres = PostgresContainer("postgres:16")
        postgres.start()
    except DockerException as exc:
        if os.environ.get("CI", "").lower() in {"1", "true", "yes"}:
            pytest.fail(
                f"Docker daemon unavailable in CI for testcontainers-backed integration tests: {exc}"
            )
        pytest.skip(f"Docker daemon unavailable for testcontainers-backed integration tests: {exc}")

    private_pem, public_pem = _generate_rsa_keypair()
    database_url = _postgres_async_url(postgres)

    restore_env = _set_env_values(
        {
            "APP__ENVIRONMENT": "development",
            "APP__SERVICE": "marketplace-auth",
            "APP__LOG_LEVEL": "INFO",
            "DATABASE__URL": database_url,
            "JWT__PRIVATE_KEY_PEM": private_pem,
            "JWT__PUBLIC_KEY_PEM": public_pem,
            "JWT__ACCESS_TOKEN_TTL_SECONDS": "900",
            "NOTIFICATIONS__TOKEN_ENCRYPTION_KEY": "integration-notification-secret",
            "EMAIL__SMTP_HOST": "localhost",
            "UPLOADS__CLOUD_NAME": "integration",
        }
    )
    _clear_dependency_caches()

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")

    try:
        yield {"database_url": database_url}
    finally:
        try:
            _clear_dependency_caches()
        finally:
            restore_env()
            postgres.stop()


@pytest.fixture(scope="function", autouse=True)
async def reset_state(request: pytest.FixtureRequest) -> AsyncIterator[None]:
    """Clear tables between tests that touch the database."""
    if "integration_env" not in request.fixturenames:
        yield
        return
    request.getfixturevalue("integration_env")

    from app.db.session import get_session_factory
    from app.models import Account, PendingVerification

    await _dispose_async_singletons()
    _clear_dependency_caches()

    async with get_session_factory()() as session:
        await session.execute(delete(PendingVerification))
        await session.execute(delete(Account))
        await session.commit()
    try:
        yield
    finally:
        await _dispose_async_singletons()
        _clear_dependency_caches()


@pytest.fixture(scope="function")
async def db_session_factory(integration_env: dict[str, str]) -> async_sessionmaker[AsyncSession]:
    """Expose async session factory bound to integration Postgres."""
    del integration_env
    from app.db.session import get_session_factory

    return get_session_factory()


@pytest.fixture(scope="function")
async def db_session(
    db_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a write-capable async DB session for test seeding and assertions."""
    async with db_session_factory() as session:
        yield session


@dataclass
class CapturedEmail:
    to_email: str
    subject: str
    body: str

    @property
    def code(self) -> str:
        return next(line for line in self.body.splitlines() if line.isdigit() and len(line) == 6)


@dataclass
class CapturingEmailSender:
    """In-memory sender standing in for the SMTP relay."""

    messages: list[CapturedEmail] = field(default_factory=list)

    async def send(self, to_email: str, subject: str, body: str) -> None:
        self.messages.append(CapturedEmail(to_email=to_email, subject=subject, body=body))


@dataclass
class StubUploader:
    max_document_bytes: int = 10 * 1024 * 1024
    folders: list[str] = field(default_factory=list)

    async def upload_document(self, document: Any, folder: str) -> str:
        self.folders.append(folder)
        return f"https://cdn.test/{folder}/{document.filename}"


@pytest.fixture(scope="function")
def email_sender() -> CapturingEmailSender:
    return CapturingEmailSender()


@pytest.fixture(scope="function")
def uploader() -> StubUploader:
    return StubUploader()


@pytest.fixture(scope="function")
def app_factory(
    integration_env: dict[str, str],
    email_sender: CapturingEmailSender,
    uploader: StubUploader,
) -> Callable[[], Any]:
    """Build app instances wired to Postgres with captured email and uploads."""
    del integration_env
    from app.core.uploads import get_document_uploader
    from app.main import create_app
    from app.services.verification_service import VerificationService, get_verification_service

    def _verification_service() -> VerificationService:
        from app.core.codes import get_code_generator
        from app.core.passwords import get_password_hasher
        from app.services.account_store import get_account_store
        from app.services.pending_store import get_pending_verification_store
        from app.services.token_service import get_token_service

        return VerificationService(
            account_store=get_account_store(),
            pending_store=get_pending_verification_store(),
            code_generator=get_code_generator(),
            password_hasher=get_password_hasher(),
            email_sender=email_sender,
            token_service=get_token_service(),
        )

    def _factory() -> Any:
        app = create_app()
        app.dependency_overrides[get_verification_service] = _verification_service
        app.dependency_overrides[get_document_uploader] = lambda: uploader
        return app

    return _factory


@pytest.fixture(scope="function")
async def admin_factory(db_session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Create admin rows through the same path as the CLI."""
    from app.services.account_service import get_account_service

    async def _create(email: str = "admin@example.com", password: str = "Admin-Password1") -> Any:
        async with db_session_factory() as session:
            return await get_account_service().create_admin(
                db_session=session,
                email=email,
                password=password,
                first_name="Site",
                last_name="Admin",
            )

    return _create
