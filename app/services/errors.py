"""Typed failures raised by the account and verification flows."""

from __future__ import annotations


class AccountFlowError(Exception):
    """Base failure carrying a user-facing message, machine code, and HTTP status."""

    default_detail = "Request failed."
    code = "request_failed"
    status_code = 400

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationFailed(AccountFlowError):
    default_detail = "Invalid request payload."
    code = "validation_error"


class EmailTaken(AccountFlowError):
    default_detail = "Email already in use."
    code = "email_taken"


class InvalidRole(AccountFlowError):
    default_detail = "You cannot register as admin."
    code = "invalid_role"


class VerificationNotFound(AccountFlowError):
    default_detail = "No verification request found."
    code = "verification_not_found"


class CodeExpired(AccountFlowError):
    default_detail = "Code expired."
    code = "code_expired"


class InvalidCode(AccountFlowError):
    default_detail = "Invalid code."
    code = "invalid_code"


class ResetNotVerified(AccountFlowError):
    default_detail = "No verified reset request found."
    code = "reset_not_verified"


class AccountNotFound(AccountFlowError):
    default_detail = "Account not found."
    code = "account_not_found"
    status_code = 404


class InvalidCredentials(AccountFlowError):
    default_detail = "Incorrect email or password."
    code = "invalid_credentials"
    status_code = 401


class InvalidToken(AccountFlowError):
    default_detail = "Invalid token."
    code = "invalid_token"
    status_code = 401


class NotApproved(AccountFlowError):
    default_detail = "Your account is not approved yet."
    code = "not_approved"
    status_code = 403


class Forbidden(AccountFlowError):
    default_detail = "You are not allowed to access this route."
    code = "forbidden"
    status_code = 403


class CardAlreadySubmitted(AccountFlowError):
    default_detail = "Verification card already submitted."
    code = "card_already_submitted"
    status_code = 409


class DependencyFailure(AccountFlowError):
    default_detail = "Upstream dependency failed."
    code = "dependency_failure"
    status_code = 500


class CardNotReviewable(AccountFlowError):
    default_detail = "No submitted verification card to review."
    code = "card_not_reviewable"
    status_code = 409
