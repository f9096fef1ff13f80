"""Encryption at rest for device notification tokens."""

from __future__ import annotations

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet

from app.config import get_settings


class NotificationTokenCipher:
    """Fernet wrapper; the configured secret is stretched into a valid Fernet key."""

    _ENCRYPTION_PREFIX = "fernet:"

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Notification token encryption secret must not be empty.")
        self._fernet = Fernet(self._build_fernet_key(secret))

    def encrypt(self, token: str) -> str:
        """Encrypt a device token before persistence."""
        encrypted = self._fernet.encrypt(token.encode("utf-8")).decode("utf-8")
        return f"{self._ENCRYPTION_PREFIX}{encrypted}"

    @staticmethod
    def _build_fernet_key(secret: str) -> bytes:
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest)


@lru_cache
def get_notification_token_cipher() -> NotificationTokenCipher:
    """Create and cache the notification token cipher from settings."""
    settings = get_settings()
    return NotificationTokenCipher(settings.notifications.token_encryption_key.get_secret_value())
