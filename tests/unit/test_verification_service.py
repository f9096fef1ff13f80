"""Unit tests for the code-gated signup and password reset workflow."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.models.pending_verification import VerificationPurpose
from app.schemas.auth import SignupRequest
from app.schemas.profiles import CardStatus, SellerProfile
from app.services.errors import (
    CodeExpired,
    DependencyFailure,
    EmailTaken,
    InvalidCode,
    InvalidRole,
    ResetNotVerified,
    VerificationNotFound,
)
from app.services.verification_service import VerificationService

SIGNUP = VerificationPurpose.EMAIL_VERIFICATION
RESET = VerificationPurpose.PASSWORD_RESET


@pytest.fixture
def service(
    account_store,
    pending_store,
    code_generator,
    password_hasher,
    email_sender,
    token_service,
) -> VerificationService:
    return VerificationService(
        account_store=account_store,
        pending_store=pending_store,
        code_generator=code_generator,
        password_hasher=password_hasher,
        email_sender=email_sender,
        token_service=token_service,
    )


def _signup(email: str = "Buyer@Example.com", role: str = "buyer", **extra: object) -> SignupRequest:
    return SignupRequest.model_validate(
        {
            "firstName": "Mona",
            "lastName": "Adel",
            "email": email,
            "password": "correct-horse",
            "confirmPassword": "correct-horse",
            "role": role,
            **extra,
        }
    )


async def _register(service, fake_db, email_sender, email: str = "buyer@example.com"):
    await service.request_email_verification(fake_db, _signup(email=email))
    code = email_sender.last_to(email).code
    return await service.confirm_email_verification(fake_db, email, code)


@pytest.mark.asyncio
async def test_signup_holds_data_until_code_is_confirmed(service, fake_db, email_sender) -> None:
    """No account exists before confirmation; confirmation creates it and removes the record."""
    await service.request_email_verification(fake_db, _signup())

    assert fake_db.accounts == {}
    record = fake_db.pending[("buyer@example.com", SIGNUP.value)]
    assert record.verified is False
    assert record.payload is not None
    assert "correct-horse" not in str(record.payload)
    message = email_sender.last_to("buyer@example.com")
    assert message.subject == "Email Verification Code"
    assert message.code not in record.code_hash

    confirmation = await service.confirm_email_verification(
        fake_db, "buyer@example.com", message.code
    )

    assert confirmation.token is not None
    assert confirmation.awaiting_approval is False
    assert confirmation.account.email == "buyer@example.com"
    assert confirmation.account.role == "buyer"
    assert list(fake_db.accounts.values()) == [confirmation.account]
    assert fake_db.pending == {}


@pytest.mark.asyncio
async def test_code_is_single_use(service, fake_db, email_sender) -> None:
    """Replaying a consumed code reports a missing request and creates nothing."""
    await service.request_email_verification(fake_db, _signup())
    code = email_sender.last_to("buyer@example.com").code
    await service.confirm_email_verification(fake_db, "buyer@example.com", code)

    with pytest.raises(VerificationNotFound):
        await service.confirm_email_verification(fake_db, "buyer@example.com", code)

    assert len(fake_db.accounts) == 1


@pytest.mark.asyncio
async def test_new_signup_request_supersedes_previous_code(service, fake_db, email_sender) -> None:
    """Only the most recent code for an email is accepted."""
    await service.request_email_verification(fake_db, _signup())
    first = email_sender.last_to("buyer@example.com").code
    await service.request_email_verification(fake_db, _signup())
    second = email_sender.last_to("buyer@example.com").code

    assert len(fake_db.pending) == 1
    if first != second:
        with pytest.raises(InvalidCode):
            await service.confirm_email_verification(fake_db, "buyer@example.com", first)

    confirmation = await service.confirm_email_verification(fake_db, "buyer@example.com", second)
    assert confirmation.token is not None


@pytest.mark.asyncio
async def test_wrong_code_keeps_record_for_retry(service, fake_db, email_sender) -> None:
    """An invalid code is rejected without consuming the pending record."""
    await service.request_email_verification(fake_db, _signup())
    code = email_sender.last_to("buyer@example.com").code
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"

    with pytest.raises(InvalidCode):
        await service.confirm_email_verification(fake_db, "buyer@example.com", wrong)

    assert ("buyer@example.com", SIGNUP.value) in fake_db.pending
    assert fake_db.accounts == {}
    confirmation = await service.confirm_email_verification(fake_db, "buyer@example.com", code)
    assert confirmation.account.email == "buyer@example.com"


@pytest.mark.asyncio
async def test_expired_code_is_rejected_and_record_removed(service, fake_db, email_sender) -> None:
    """Expiry is detected on read; the record is gone afterwards."""
    await service.request_email_verification(fake_db, _signup())
    code = email_sender.last_to("buyer@example.com").code
    record = fake_db.pending[("buyer@example.com", SIGNUP.value)]
    record.expires_at = datetime.now(UTC) - timedelta(seconds=1)

    with pytest.raises(CodeExpired):
        await service.confirm_email_verification(fake_db, "buyer@example.com", code)
    assert fake_db.pending == {}

    with pytest.raises(VerificationNotFound):
        await service.confirm_email_verification(fake_db, "buyer@example.com", code)
    assert fake_db.accounts == {}


@pytest.mark.asyncio
async def test_admin_self_registration_is_refused(service, fake_db, email_sender) -> None:
    """Admin role cannot be requested through signup."""
    with pytest.raises(InvalidRole):
        await service.request_email_verification(fake_db, _signup(role="admin"))

    assert fake_db.pending == {}
    assert email_sender.messages == []


@pytest.mark.asyncio
async def test_signup_with_existing_email_is_refused(service, fake_db, email_sender) -> None:
    """Emails are unique across accounts regardless of case."""
    await _register(service, fake_db, email_sender)
    sent_before = len(email_sender.messages)

    with pytest.raises(EmailTaken):
        await service.request_email_verification(fake_db, _signup(email="BUYER@example.com"))

    assert len(email_sender.messages) == sent_before
    assert fake_db.pending == {}


@pytest.mark.asyncio
async def test_email_failure_leaves_no_pending_record(service, fake_db, email_sender) -> None:
    """A code that could not be delivered is never stored."""
    email_sender.fail = True

    with pytest.raises(DependencyFailure) as exc_info:
        await service.request_email_verification(fake_db, _signup())

    assert exc_info.value.detail == "Error sending email."
    assert fake_db.pending == {}


@pytest.mark.asyncio
async def test_seller_with_document_waits_for_approval(service, fake_db, email_sender) -> None:
    """A seller who uploaded a document gets no session until an admin approves the card."""
    fields = _signup(
        email="seller@example.com",
        role="seller",
        shopName="Nile Crafts",
        categories=["pottery", " ", "textiles"],
    )
    await service.request_email_verification(
        fake_db,
        fields,
        uploaded_document_url="https://files.example.com/card.pdf",
    )
    code = email_sender.last_to("seller@example.com").code

    confirmation = await service.confirm_email_verification(fake_db, "seller@example.com", code)

    assert confirmation.token is None
    assert confirmation.awaiting_approval is True
    profile = confirmation.account.profile_document
    assert isinstance(profile, SellerProfile)
    assert profile.shop_name == "Nile Crafts"
    assert profile.categories == ["pottery", "textiles"]
    assert profile.verification_card is not None
    assert profile.verification_card.status == CardStatus.SUBMITTED
    assert profile.verification_card.document_url == "https://files.example.com/card.pdf"
    assert profile.verification_card.id_type == "national_id"
    assert profile.verification_card.id_number == "unknown"
    assert email_sender.messages[-1].subject == "Account Created - Pending Approval"


@pytest.mark.asyncio
async def test_seller_without_document_receives_session(service, fake_db, email_sender) -> None:
    """A seller without a card can log in to submit one later."""
    await service.request_email_verification(
        fake_db, _signup(email="seller@example.com", role="seller")
    )
    code = email_sender.last_to("seller@example.com").code

    confirmation = await service.confirm_email_verification(fake_db, "seller@example.com", code)

    assert confirmation.token is not None
    profile = confirmation.account.profile_document
    assert isinstance(profile, SellerProfile)
    assert profile.shop_name == "Mona Shop"
    assert profile.verification_card is None


@pytest.mark.asyncio
async def test_client_cannot_smuggle_profile_state(service, fake_db, email_sender) -> None:
    """Only allow-listed signup fields reach the held-back payload."""
    fields = _signup(
        email="seller@example.com",
        role="seller",
        verificationCard={"status": "verified", "idType": "passport"},
        rating=5,
    )
    await service.request_email_verification(fake_db, fields)

    payload = fake_db.pending[("seller@example.com", SIGNUP.value)].signup_payload()
    assert isinstance(payload.profile, SellerProfile)
    assert payload.profile.verification_card is None
    assert payload.profile.rating == 0


@pytest.mark.asyncio
async def test_password_reset_three_steps(
    service, fake_db, email_sender, password_hasher, jwt_service
) -> None:
    """Request, confirm, and complete a reset; the old password stops working."""
    created = await _register(service, fake_db, email_sender)
    account = created.account

    await service.request_password_reset(fake_db, "buyer@example.com")
    message = email_sender.last_to("buyer@example.com")
    assert message.subject == "Password Reset Code"

    await service.confirm_password_reset_code(fake_db, "buyer@example.com", message.code)
    assert fake_db.pending[("buyer@example.com", RESET.value)].verified is True

    token = await service.complete_password_reset(fake_db, "buyer@example.com", "brand-new-secret")

    assert jwt_service.verify_token(token)["sub"] == str(account.id)
    assert password_hasher.verify_password("brand-new-secret", account.password_hash)
    assert not password_hasher.verify_password("correct-horse", account.password_hash)
    assert account.password_changed_at is not None
    assert fake_db.pending == {}


@pytest.mark.asyncio
async def test_reset_without_code_confirmation_is_refused(service, fake_db, email_sender) -> None:
    """Skipping the confirmation step leaves the password unchanged."""
    created = await _register(service, fake_db, email_sender)
    original_hash = created.account.password_hash
    await service.request_password_reset(fake_db, "buyer@example.com")

    with pytest.raises(ResetNotVerified):
        await service.complete_password_reset(fake_db, "buyer@example.com", "brand-new-secret")

    assert created.account.password_hash == original_hash


@pytest.mark.asyncio
async def test_second_reset_request_invalidates_first_code(service, fake_db, email_sender) -> None:
    """A repeated reset request resets the confirmation state and replaces the code."""
    await _register(service, fake_db, email_sender)
    await service.request_password_reset(fake_db, "buyer@example.com")
    first = email_sender.last_to("buyer@example.com").code
    await service.confirm_password_reset_code(fake_db, "buyer@example.com", first)

    await service.request_password_reset(fake_db, "buyer@example.com")
    second = email_sender.last_to("buyer@example.com").code

    assert fake_db.pending[("buyer@example.com", RESET.value)].verified is False
    if first != second:
        with pytest.raises(InvalidCode):
            await service.confirm_password_reset_code(fake_db, "buyer@example.com", first)
    await service.confirm_password_reset_code(fake_db, "buyer@example.com", second)


@pytest.mark.asyncio
async def test_reset_for_unknown_email_is_silent(service, fake_db, email_sender) -> None:
    """Unknown emails get no code and no record, and no error either."""
    await service.request_password_reset(fake_db, "ghost@example.com")

    assert email_sender.messages == []
    assert fake_db.pending == {}


@pytest.mark.asyncio
async def test_reset_mail_failure_is_fatal_only_for_known_emails(service, fake_db, email_sender) -> None:
    """Delivery failure surfaces for a real account; an unknown email never reaches the mailer."""
    await _register(service, fake_db, email_sender)
    email_sender.fail = True

    with pytest.raises(DependencyFailure):
        await service.request_password_reset(fake_db, "buyer@example.com")
    await service.request_password_reset(fake_db, "ghost@example.com")

    assert fake_db.pending == {}


@pytest.mark.asyncio
async def test_expired_reset_request_is_removed(service, fake_db, email_sender) -> None:
    """A confirmed reset that outlived its code lifetime cannot be completed."""
    await _register(service, fake_db, email_sender)
    await service.request_password_reset(fake_db, "buyer@example.com")
    code = email_sender.last_to("buyer@example.com").code
    await service.confirm_password_reset_code(fake_db, "buyer@example.com", code)
    record = fake_db.pending[("buyer@example.com", RESET.value)]
    record.expires_at = datetime.now(UTC) - timedelta(seconds=1)

    with pytest.raises(CodeExpired):
        await service.complete_password_reset(fake_db, "buyer@example.com", "brand-new-secret")

    assert fake_db.pending == {}
