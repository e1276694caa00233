"""Inbound webhooks from the payment platform."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.core.exceptions import AppException
from src.services.stripe_service import verify_webhook
from src.services.webhooks import dispatch_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db_session),
):
    payload = await request.body()
    event = verify_webhook(payload, stripe_signature)

    try:
        outcome = await dispatch_event(db, event)
    except AppException:
        raise
    except Exception as exc:
        logger.exception(f"Error processing webhook {event.get('id')}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc

    return {"received": True, "type": event["type"], "outcome": outcome}
