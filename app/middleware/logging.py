"""Request correlation and structured access logging.

Verification codes, passwords, and device tokens must never reach the logs, so
query parameters pass through :func:`redact` before they are emitted.
"""

from __future__ import annotations

from collections.abc import Mapping
from time import perf_counter
from typing import Any
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_ID_HEADER = "X-Correlation-ID"
REDACTED = "***REDACTED***"
SENSITIVE_FIELDS = frozenset(
    {
        "authorization",
        "code",
        "confirmnewpassword",
        "confirmpassword",
        "cookie",
        "fcmtoken",
        "newpassword",
        "password",
        "token",
    }
)

logger = structlog.get_logger(__name__)


def is_sensitive(key: str) -> bool:
    """Match both camelCase and snake_case spellings of credential fields."""
    normalized = key.lower().replace("_", "").replace("-", "")
    if normalized in SENSITIVE_FIELDS:
        return True
    return "password" in normalized or "token" in normalized


def redact(values: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy with credential-bearing values replaced."""
    redacted: dict[str, Any] = {}
    for key, value in values.items():
        if is_sensitive(key):
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact(value)
        elif isinstance(value, list):
            redacted[key] = [redact(item) if isinstance(item, Mapping) else item for item in value]
        else:
            redacted[key] = value
    return redacted


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to the request and log its outcome once."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER, "").strip() or str(uuid4())
        request.state.correlation_id = correlation_id
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        start = perf_counter()
        fields = {
            "method": request.method,
            "path": request.url.path,
            "query_params": redact(request.query_params),
            "client_ip": _client_ip(request),
        }
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_completed",
                status_code=500,
                duration_ms=round((perf_counter() - start) * 1000, 2),
                **fields,
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("correlation_id")

        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((perf_counter() - start) * 1000, 2),
            correlation_id=correlation_id,
            **fields,
        )
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
