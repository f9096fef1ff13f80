"""Signup, login, password reset, and device token routes."""

from __future__ import annotations

from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.uploads import (
    DocumentFile,
    DocumentUploader,
    UploadFailedError,
    UploadRejectedError,
    get_document_uploader,
)
from app.dependencies import get_current_account, get_database_session
from app.models.account import Account
from app.schemas.auth import (
    AccountEnvelope,
    AccountResponse,
    AuthenticatedResponse,
    ForgetPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SellerCardRequest,
    SignupRequest,
    TokenResponse,
    UpdateFcmTokenRequest,
    VerifyCodeRequest,
)
from app.schemas.profiles import AccountRole
from app.services.account_service import AccountService, get_account_service
from app.services.errors import DependencyFailure, ValidationFailed
from app.services.login_service import LoginService, get_login_service
from app.services.verification_service import VerificationService, get_verification_service

router = APIRouter(tags=["auth"])

PENDING_SIGNUP_FOLDER = "seller_cards/temp"

FormModel = TypeVar("FormModel", bound=BaseModel)


def account_view(account: Account) -> AccountResponse:
    """Project an account row onto its public response shape."""
    return AccountResponse(
        id=account.id,
        first_name=account.first_name,
        last_name=account.last_name,
        email=account.email,
        role=AccountRole(account.role),
        preferred_lang=account.preferred_language,
        phone_number=account.phone_number,
        profile=account.profile_document,
        created_at=account.created_at,
    )


def _validate_form(model: type[FormModel], values: dict[str, object]) -> FormModel:
    """Validate collected form parts, reporting failures like body validation."""
    try:
        return model.model_validate(
            {key: value for key, value in values.items() if value is not None}
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc


def signup_form(
    first_name: Annotated[str | None, Form(alias="firstName")] = None,
    last_name: Annotated[str | None, Form(alias="lastName")] = None,
    email: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    confirm_password: Annotated[str | None, Form(alias="confirmPassword")] = None,
    role: Annotated[str | None, Form()] = None,
    preferred_lang: Annotated[str | None, Form(alias="preferredLang")] = None,
    phone_number: Annotated[str | None, Form(alias="phoneNumber")] = None,
    shop_name: Annotated[str | None, Form(alias="shopName")] = None,
    shop_description: Annotated[str | None, Form(alias="shopDescription")] = None,
    address: Annotated[str | None, Form()] = None,
    categories: Annotated[list[str] | None, Form()] = None,
    id_type: Annotated[str | None, Form(alias="idType")] = None,
    id_number: Annotated[str | None, Form(alias="idNumber")] = None,
) -> SignupRequest:
    """Collect the multipart signup fields into a validated request."""
    return _validate_form(SignupRequest, dict(locals()))


def seller_card_form(
    id_type: Annotated[str | None, Form(alias="idType")] = None,
    id_number: Annotated[str | None, Form(alias="idNumber")] = None,
) -> SellerCardRequest:
    return _validate_form(SellerCardRequest, dict(locals()))


def _has_file(upload: UploadFile | None) -> bool:
    return upload is not None and bool(upload.filename)


async def _upload_document(uploader: DocumentUploader, upload: UploadFile, folder: str) -> str:
    """Send a received file to object storage and return its URL."""
    limit = uploader.max_document_bytes
    content = await upload.read(limit + 1)
    if len(content) > limit:
        raise ValidationFailed("Verification document is too large.")
    document = DocumentFile(
        content=content,
        filename=upload.filename or "document",
        content_type=upload.content_type or "",
    )
    try:
        return await uploader.upload_document(document, folder)
    except UploadRejectedError as exc:
        raise ValidationFailed(str(exc)) from exc
    except UploadFailedError as exc:
        raise DependencyFailure("Failed to upload verification document.") from exc


@router.post("/signup", response_model=MessageResponse)
async def signup(
    fields: Annotated[SignupRequest, Depends(signup_form)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    verification_service: Annotated[VerificationService, Depends(get_verification_service)],
    uploader: Annotated[DocumentUploader, Depends(get_document_uploader)],
    verification_document: Annotated[
        UploadFile | None, File(alias="verificationDocument")
    ] = None,
) -> MessageResponse:
    """Hold signup data and email a verification code."""
    document_url = None
    if fields.role == AccountRole.SELLER and _has_file(verification_document):
        document_url = await _upload_document(
            uploader, verification_document, PENDING_SIGNUP_FOLDER
        )
    await verification_service.request_email_verification(
        db_session=db_session,
        fields=fields,
        uploaded_document_url=document_url,
    )
    return MessageResponse(message="Verification code sent to your email.")


@router.post(
    "/verifyEmailUser",
    status_code=201,
    response_model=AuthenticatedResponse | MessageResponse,
)
async def verify_email_user(
    payload: VerifyCodeRequest,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    verification_service: Annotated[VerificationService, Depends(get_verification_service)],
) -> AuthenticatedResponse | MessageResponse:
    """Consume the signup code and create the account."""
    confirmation = await verification_service.confirm_email_verification(
        db_session=db_session,
        email=payload.email,
        code=payload.code,
    )
    if confirmation.token is None:
        return MessageResponse(
            message="Email verified successfully. Your account is pending approval."
        )
    return AuthenticatedResponse(
        message="Email verified successfully",
        token=confirmation.token,
        user=account_view(confirmation.account),
    )


@router.post("/login", response_model=AuthenticatedResponse)
async def login(
    payload: LoginRequest,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    login_service: Annotated[LoginService, Depends(get_login_service)],
) -> AuthenticatedResponse:
    """Authenticate email/password credentials and issue a session token."""
    result = await login_service.login(
        db_session=db_session,
        email=payload.email,
        password=payload.password,
    )
    return AuthenticatedResponse(token=result.token, user=account_view(result.account))


@router.post("/forgetPassword", response_model=MessageResponse)
async def forget_password(
    payload: ForgetPasswordRequest,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    verification_service: Annotated[VerificationService, Depends(get_verification_service)],
) -> MessageResponse:
    """Email a password reset code."""
    await verification_service.request_password_reset(db_session=db_session, email=payload.email)
    return MessageResponse(message="Password reset code sent to your email.")


@router.post("/verifyForgotPasswordCode", response_model=MessageResponse)
async def verify_forgot_password_code(
    payload: VerifyCodeRequest,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    verification_service: Annotated[VerificationService, Depends(get_verification_service)],
) -> MessageResponse:
    """Confirm the reset code ahead of choosing a new password."""
    await verification_service.confirm_password_reset_code(
        db_session=db_session,
        email=payload.email,
        code=payload.code,
    )
    return MessageResponse(message="Code verified successfully")


@router.post("/resetPassword", response_model=TokenResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    verification_service: Annotated[VerificationService, Depends(get_verification_service)],
) -> TokenResponse:
    """Set the new password and issue a fresh session token."""
    token = await verification_service.complete_password_reset(
        db_session=db_session,
        email=payload.email,
        new_password=payload.new_password,
    )
    return TokenResponse(message="Password reset successfully", token=token)


@router.post("/updateFcmToken", response_model=MessageResponse)
async def update_fcm_token(
    payload: UpdateFcmTokenRequest,
    account: Annotated[Account, Depends(get_current_account)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    account_service: Annotated[AccountService, Depends(get_account_service)],
) -> MessageResponse:
    """Register the device notification token of the current account."""
    await account_service.update_notification_token(
        db_session=db_session,
        account=account,
        token=payload.fcm_token,
    )
    return MessageResponse(message="FCM Token updated successfully.")


@router.post("/sellerCard", response_model=AccountEnvelope)
async def submit_seller_card(
    fields: Annotated[SellerCardRequest, Depends(seller_card_form)],
    verification_document: Annotated[UploadFile, File(alias="verificationDocument")],
    account: Annotated[Account, Depends(get_current_account)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    account_service: Annotated[AccountService, Depends(get_account_service)],
    uploader: Annotated[DocumentUploader, Depends(get_document_uploader)],
) -> AccountEnvelope:
    """Submit or resubmit the seller verification card."""
    if not account.is_seller:
        raise ValidationFailed("Only sellers can upload verification documents.")
    if not _has_file(verification_document):
        raise ValidationFailed(
            "Verification document is required (upload file under field 'verificationDocument')."
        )
    document_url = await _upload_document(
        uploader, verification_document, f"seller_cards/{account.id}"
    )
    updated = await account_service.submit_verification_card(
        db_session=db_session,
        account=account,
        id_type=fields.id_type,
        id_number=fields.id_number,
        document_url=document_url,
    )
    return AccountEnvelope(message="Verification card submitted.", user=account_view(updated))
