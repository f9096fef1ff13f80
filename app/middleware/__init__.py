"""Middleware package exports."""

from app.middleware.logging import CORRELATION_ID_HEADER, RequestLoggingMiddleware

__all__ = ["CORRELATION_ID_HEADER", "RequestLoggingMiddleware"]
