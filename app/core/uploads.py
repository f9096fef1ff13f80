"""Verification document upload to the object storage / image service."""

from __future__ import annotations

import asyncio
import io
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from app.config import get_settings

ALLOWED_DOCUMENT_TYPES = frozenset({"application/pdf", "image/jpeg", "image/png", "image/jpg"})
_WHITESPACE = re.compile(r"\s+")


class UploadRejectedError(Exception):
    """Raised when the submitted file is not acceptable as a document."""


class UploadFailedError(Exception):
    """Raised when the storage service could not store the file."""


@dataclass(frozen=True)
class DocumentFile:
    """In-memory file received from the client."""

    content: bytes
    filename: str
    content_type: str


class DocumentUploader(Protocol):
    """Contract for document storage adapters."""

    max_document_bytes: int

    async def upload_document(self, document: DocumentFile, folder: str) -> str:
        """Store the file and return its durable URL."""


def validate_document(document: DocumentFile, max_bytes: int) -> None:
    """Reject unsupported content types, empty files, and oversized files."""
    if document.content_type not in ALLOWED_DOCUMENT_TYPES:
        raise UploadRejectedError("Verification document must be PDF or image (jpg/png).")
    if not document.content:
        raise UploadRejectedError("Verification document is empty.")
    if len(document.content) > max_bytes:
        raise UploadRejectedError("Verification document is too large.")


def build_public_id(filename: str, now_ms: int | None = None) -> str:
    """Build a timestamped public id from the original file name."""
    stem = (filename or "document").split(".")[0] or "document"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stamp}-{_WHITESPACE.sub('_', stem)}"


class CloudinaryUploader:
    """Uploads through the Cloudinary SDK, run in a worker thread."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        max_document_bytes: int = 10 * 1024 * 1024,
        timeout_seconds: float = 15.0,
        upload: Callable[..., dict[str, Any]] | None = None,
    ) -> None:
        self._credentials = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
        }
        self.max_document_bytes = max_document_bytes
        self._timeout_seconds = timeout_seconds
        self._upload = upload or cloudinary.uploader.upload

    async def upload_document(self, document: DocumentFile, folder: str) -> str:
        """Validate and upload a document, returning its secure URL."""
        validate_document(document, self.max_document_bytes)
        try:
            result = await asyncio.to_thread(
                self._upload,
                io.BytesIO(document.content),
                folder=folder,
                public_id=build_public_id(document.filename),
                resource_type="auto",
                filename=document.filename or "document",
                timeout=self._timeout_seconds,
                **self._credentials,
            )
        except (CloudinaryError, OSError) as exc:
            raise UploadFailedError("Storage service could not store the document.") from exc

        url = self._pick_url(result)
        if url is None:
            raise UploadFailedError("Storage service returned no file URL.")
        return url

    @staticmethod
    def _pick_url(result: Any) -> str | None:
        if not isinstance(result, dict):
            return None
        url = result.get("secure_url") or result.get("url")
        return str(url) if url else None


@lru_cache
def get_document_uploader() -> DocumentUploader:
    """Create and cache the configured document uploader."""
    settings = get_settings()
    uploads = settings.uploads
    return CloudinaryUploader(
        cloud_name=uploads.cloud_name,
        api_key=uploads.api_key,
        api_secret=uploads.api_secret.get_secret_value(),
        max_document_bytes=uploads.max_document_bytes,
        timeout_seconds=uploads.timeout_seconds,
    )
