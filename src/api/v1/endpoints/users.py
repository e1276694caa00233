"""Endpoints for bootstrapping the caller's billing record."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.auth.jwt import require_auth
from src.schemas.billing import UserBootstrap, UserRead
from src.services import billing as billing_service


router = APIRouter(prefix="/users", tags=["users"])


@router.post("/me", response_model=UserRead)
async def bootstrap_user(
    body: UserBootstrap | None = None,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    claims = auth["claims"]
    body = body or UserBootstrap()
    user = await billing_service.ensure_user(
        db,
        auth["user_id"],
        email=body.email or claims.get("email"),
        name=body.name or claims.get("name"),
    )
    return UserRead.from_user(user)


@router.get("/me", response_model=UserRead)
async def current_user(
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    user = await billing_service.get_user(db, auth["user_id"])
    return UserRead.from_user(user)
