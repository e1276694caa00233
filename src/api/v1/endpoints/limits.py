"""Endpoints for checking limits and keeping usage counters in step."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.auth.jwt import require_admin, require_auth
from src.schemas.billing import (
    LimitCheck,
    LimitCheckRequest,
    Reservation,
    UsageAlert,
    UsageChange,
    UsageDecrementRequest,
    UsageIncrementRequest,
    UsageSummary,
)
from src.services import billing as billing_service
from src.services.limits import check_rate_limit
from src.services.usage_alerts import summarize_usage, usage_alerts


router = APIRouter(prefix="/limits", tags=["limits"])


@router.post("/check", response_model=LimitCheck)
async def check(
    body: LimitCheckRequest,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    return await billing_service.check_limit(db, user_id, body.action)


@router.get("/usage", response_model=UsageSummary)
async def usage(
    auth=Depends(require_auth), db: AsyncSession = Depends(get_db_session)
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    info = await billing_service.get_user_plan_info(db, user_id)
    return summarize_usage(info)


@router.get("/alerts", response_model=List[UsageAlert])
async def alerts(
    auth=Depends(require_auth), db: AsyncSession = Depends(get_db_session)
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    info = await billing_service.get_user_plan_info(db, user_id)
    return usage_alerts(info)


@router.post("/usage/increment", response_model=UsageChange)
async def increment(
    body: UsageIncrementRequest,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    usage_read = await billing_service.increment_usage(db, user_id, body.action)
    return UsageChange(usage=usage_read)


@router.post("/usage/decrement", response_model=UsageChange)
async def decrement(
    body: UsageDecrementRequest,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    usage_read = await billing_service.decrement_usage(db, user_id, body.action)
    return UsageChange(usage=usage_read)


@router.post("/usage/reserve", response_model=Reservation)
async def reserve(
    body: UsageIncrementRequest,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    return await billing_service.reserve_usage(db, user_id, body.action)


@router.post("/users/{user_id}/reset", response_model=UsageChange)
async def reset(
    user_id: str,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    usage_read = await billing_service.reset_monthly_usage(db, user_id)
    return UsageChange(usage=usage_read)
