"""Liveness and readiness probes."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.db.session import get_engine

router = APIRouter(prefix="/health", tags=["health"])
logger = structlog.get_logger(__name__)


async def check_database_ready() -> bool:
    """Return True when Postgres answers a trivial query."""
    try:
        async with get_engine().connect() as connection:
            await connection.execute(select(1))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("database_not_ready", error=str(exc))
        return False
    return True


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/ready")
async def ready(
    database_ready: Annotated[bool, Depends(check_database_ready)],
) -> dict[str, str]:
    """Readiness requires a reachable database."""
    if not database_ready:
        raise HTTPException(
            status_code=503,
            detail={"message": "Service not ready.", "code": "service_unavailable"},
        )
    return {"status": "ready"}
