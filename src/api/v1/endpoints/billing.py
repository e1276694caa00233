"""Endpoints for plan information, checkout and plan transitions."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.auth.jwt import require_admin, require_auth
from src.schemas.billing import (
    CheckoutRequest, CheckoutResponse, PlanChange, PlanInfo
)
from src.services import billing as billing_service
from src.services.limits import check_rate_limit, ensure_idempotent
from src.services.plans import PlanTier
from src.services.stripe_service import create_checkout_session


router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/plan", response_model=PlanInfo)
async def plan_info(
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    return await billing_service.get_user_plan_info(db, user_id)


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    body: CheckoutRequest,
    auth=Depends(require_auth),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db_session),
):
    user_id = auth["user_id"]

    if body.plan != PlanTier.PREMIUM.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid plan",
        )

    await check_rate_limit(user_id)
    await ensure_idempotent(user_id, idempotency_key)

    user = await billing_service.ensure_user(db, user_id, email=auth["claims"].get("email"))
    session = create_checkout_session(
        user_id,
        customer_id=user.stripe_customer_id,
        customer_email=user.email or auth["claims"].get("email"),
    )
    return CheckoutResponse(**session)


@router.post("/users/{user_id}/upgrade", response_model=PlanChange)
async def upgrade_user(
    user_id: str,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await billing_service.upgrade_to_premium(db, user_id)


@router.post("/users/{user_id}/downgrade", response_model=PlanChange)
async def downgrade_user(
    user_id: str,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await billing_service.downgrade_to_free(db, user_id)
