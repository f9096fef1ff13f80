"""Global exception handlers enforcing the API error envelope."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.errors import AccountFlowError

_DEFAULT_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "validation_error",
    401: "invalid_token",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    503: "service_unavailable",
}

logger = structlog.get_logger(__name__)


def error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build the JSON error envelope: ``fail`` for client errors, ``error`` otherwise."""
    status = "fail" if 400 <= status_code < 500 else "error"
    return JSONResponse(
        status_code=status_code,
        content={"status": status, "message": detail, "code": code},
    )


def _extract_detail_and_code(detail: Any) -> tuple[str, str | None]:
    """Normalize exception detail payload into message and optional code."""
    if isinstance(detail, dict):
        raw_detail = detail.get("message", detail.get("detail", "Request failed."))
        raw_code = detail.get("code")
        return str(raw_detail), str(raw_code) if raw_code is not None else None
    if isinstance(detail, str):
        return detail, None
    return "Request failed.", None


def _sanitize_detail(detail: str, status_code: int, environment: str) -> str:
    """Hide internal failure details outside development."""
    if environment != "development" and status_code >= 500:
        return "Internal server error."
    return detail


def _extract_client_ip(request: Request) -> str:
    """Extract request client IP with forwarding-header support."""
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    client = request.client
    return client.host if client else "unknown"


def _correlation_id(request: Request) -> str:
    return getattr(
        request.state,
        "correlation_id",
        request.headers.get("x-correlation-id", "unknown"),
    )


def _log_auth_failure(request: Request, status_code: int, detail: str, code: str) -> None:
    """Emit a WARNING-level log for client-side failures."""
    if status_code < 400 or status_code >= 500:
        return
    user_state = getattr(request.state, "user", None)
    user_id = user_state.get("user_id") if isinstance(user_state, dict) else None
    logger.warning(
        "auth_failure",
        correlation_id=_correlation_id(request),
        event_type="auth_failure",
        user_id=user_id,
        ip_address=_extract_client_ip(request),
        status_code=status_code,
        code=code,
        detail=detail,
        path=request.url.path,
        method=request.method,
    )


def register_exception_handlers(app: FastAPI, environment: str) -> None:
    """Register global exception handlers enforcing the error envelope."""

    @app.exception_handler(AccountFlowError)
    async def handle_account_flow_error(request: Request, exc: AccountFlowError) -> JSONResponse:
        """Map typed workflow failures to their status and code."""
        if exc.status_code >= 500:
            logger.error(
                "dependency_failure",
                correlation_id=_correlation_id(request),
                path=request.url.path,
                code=exc.code,
                error=exc.detail,
            )
        else:
            _log_auth_failure(request, exc.status_code, exc.detail, exc.code)
        return error_response(exc.status_code, exc.detail, exc.code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Normalize framework HTTP exceptions to the envelope."""
        detail, raw_code = _extract_detail_and_code(exc.detail)
        code = raw_code or _DEFAULT_ERROR_CODE_BY_STATUS.get(exc.status_code, "request_failed")
        _log_auth_failure(request, exc.status_code, detail, code)
        return error_response(exc.status_code, detail, code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed bodies as 400 validation failures."""
        errors = exc.errors()
        messages = [str(error.get("msg", "validation error")) for error in errors]
        detail = ", ".join(messages) if messages else "Invalid request payload."
        _log_auth_failure(request, 400, detail, "validation_error")
        return error_response(400, detail, "validation_error")

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        """Mask internal errors and enforce the envelope."""
        logger.error(
            "unhandled_exception",
            correlation_id=_correlation_id(request),
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        detail = _sanitize_detail(str(exc), 500, environment)
        return error_response(500, detail, "internal_error")
