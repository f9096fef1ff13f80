"""Admin review of seller verification cards."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_account, get_database_session
from app.models.account import Account
from app.routers.auth import account_view
from app.schemas.auth import AccountEnvelope, CardReviewRequest
from app.schemas.profiles import CardStatus
from app.services.account_service import AccountService, get_account_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/sellers/{account_id}/verificationCard", response_model=AccountEnvelope)
async def review_verification_card(
    account_id: UUID,
    payload: CardReviewRequest,
    reviewer: Annotated[Account, Depends(get_current_account)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    account_service: Annotated[AccountService, Depends(get_account_service)],
) -> AccountEnvelope:
    """Approve or reject a seller's submitted card."""
    seller = await account_service.review_verification_card(
        db_session=db_session,
        reviewer=reviewer,
        seller_id=account_id,
        decision=CardStatus(payload.decision),
        rejection_reason=payload.rejection_reason,
    )
    return AccountEnvelope(message=f"Verification card {payload.decision}.", user=account_view(seller))
