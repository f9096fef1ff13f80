"""Session credential issuance."""

from __future__ import annotations

from functools import lru_cache
from uuid import UUID

from app.config import get_settings
from app.core.jwt import JWTService, get_jwt_service


class TokenService:
    """Mint bearer credentials bound to an account id."""

    def __init__(self, jwt_service: JWTService, access_token_ttl_seconds: int) -> None:
        self._jwt_service = jwt_service
        self._access_token_ttl_seconds = access_token_ttl_seconds

    def issue(self, account_id: UUID, role: str) -> str:
        """Issue a signed access token for the account."""
        return self._jwt_service.issue_token(
            subject=str(account_id),
            token_type="access",
            expires_in_seconds=self._access_token_ttl_seconds,
            additional_claims={"role": role},
        )


@lru_cache
def get_token_service() -> TokenService:
    """Build and cache token service based on application settings."""
    settings = get_settings()
    return TokenService(
        jwt_service=get_jwt_service(),
        access_token_ttl_seconds=settings.jwt.access_token_ttl_seconds,
    )
