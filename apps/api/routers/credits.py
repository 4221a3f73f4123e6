"""Credit balance and top-up router."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_current_user
from routers.rate_limit import rate_limit
from services.credits import SUBSCRIPTION_PURCHASE, CreditLedger
from services.errors import PersistenceError, RequestFailed, ServiceDisabled

router = APIRouter()
logger = logging.getLogger(__name__)


class CreditTopUpRequest(BaseModel):
    credits: int = Field(ge=1, le=10000)
    reference: Optional[str] = Field(default=None, max_length=200)


@router.get("")
async def credits_summary(
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current balance plus the oldest ledger entries."""
    try:
        return await CreditLedger(db).get_summary(auth.user_id)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching credits for user %s", auth.user_id)
        raise RequestFailed("Failed to fetch credits", str(exc)) from exc


@router.post("/topup")
async def manual_topup(
    request: CreditTopUpRequest,
    _rate_limit: None = Depends(rate_limit("credits_topup", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not settings.ALLOW_MANUAL_TOPUP:
        raise ServiceDisabled("Manual top-up is disabled. Enable ALLOW_MANUAL_TOPUP to use it.")

    result = await CreditLedger(db).credit(
        auth.user_id,
        request.credits,
        SUBSCRIPTION_PURCHASE,
        f"Credit purchase - {request.credits} credits",
        related_id=request.reference,
    )
    logger.info("Manual top-up of %s credits for user %s", request.credits, auth.user_id)
    if not result.success:
        raise PersistenceError(result.error or "Failed to add credits")
    return {
        "success": True,
        "creditsAdded": request.credits,
        "credits": result.new_balance,
    }
