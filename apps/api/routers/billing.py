"""Credits router."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_credit_config
from database import get_db
from models.user import User
from routers.rate_limit import rate_limit
from services.credits import (
    InsufficientCreditsError,
    adjust_credits,
    ensure_user_account,
    get_credit_summary,
    set_to_tier_allowance,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class CreditAdjustmentRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=200)
    credits: int = Field(ge=1, le=100000)
    direction: Literal["add", "deduct"] = "add"
    reason: Optional[str] = Field(default=None, max_length=500)


class TierRenewalRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=200)
    tier: Literal["starter", "pro"]


@router.get("/credits")
async def credits_summary(
    user_id: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db),
):
    await ensure_user_account(user_id, db)
    return await get_credit_summary(user_id, db)


@router.post("/adjust")
async def manual_adjustment(
    request: CreditAdjustmentRequest,
    _rate_limit: None = Depends(rate_limit("billing_adjust", limit=30, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    await ensure_user_account(request.user_id, db)
    try:
        result = await adjust_credits(
            request.user_id,
            request.credits,
            db,
            deduct=request.direction == "deduct",
            description=request.reason,
        )
    except InsufficientCreditsError as exc:
        raise HTTPException(status_code=402, detail=str(exc)) from exc
    return {"ok": True, **result}


@router.post("/renew")
async def renew_paid_tier(
    request: TierRenewalRequest,
    db: AsyncSession = Depends(get_db),
):
    """Start a paid billing period: the balance is reset to the tier allowance."""
    config = get_credit_config()
    allowance = config.PRO_TIER_MONTHLY_CREDITS if request.tier == "pro" else config.STARTER_TIER_MONTHLY_CREDITS
    await ensure_user_account(request.user_id, db)
    await db.execute(update(User).where(User.id == request.user_id).values(subscription_tier=request.tier))
    await db.commit()
    result = await set_to_tier_allowance(
        request.user_id,
        allowance,
        db,
        description=f"{request.tier.capitalize()} tier renewal",
    )
    logger.info("Renewed %s tier for user %s: balance=%s", request.tier, request.user_id, result["balance_after"])
    return {"ok": True, "tier": request.tier, **result}
