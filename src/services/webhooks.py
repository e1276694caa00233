"""Dispatch of verified payment-platform webhook events.

Deliveries are at-least-once. Handlers rely on the absolute-set semantics of
the plan transitions rather than on de-duplicating event ids. A user that
cannot be resolved is logged and skipped so the platform does not retry.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import UserNotFoundError
from src.services import billing


logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, Dict[str, Any]], Awaitable[str]]


async def _on_checkout_completed(session: AsyncSession, obj: Dict[str, Any]) -> str:
    metadata = obj.get("metadata") or {}
    user_id = metadata.get("userId")
    if not user_id:
        logger.warning(f"Checkout session {obj.get('id')} completed without userId metadata")
        return "ignored"

    try:
        await billing.upgrade_to_premium(
            session,
            user_id,
            customer_id=_as_id(obj.get("customer")),
            subscription_id=_as_id(obj.get("subscription")),
        )
    except UserNotFoundError:
        logger.warning(f"Checkout completed for unknown user {user_id}")
        return "ignored"
    return "upgraded"


async def _on_subscription_deleted(session: AsyncSession, obj: Dict[str, Any]) -> str:
    customer_id = _as_id(obj.get("customer"))
    user = await _user_for_customer(session, customer_id)
    if user is None:
        logger.warning(f"Subscription deleted for unmapped customer {customer_id}")
        return "ignored"
    await billing.cancel_subscription(session, user.id)
    return "downgraded"


async def _on_subscription_updated(session: AsyncSession, obj: Dict[str, Any]) -> str:
    customer_id = _as_id(obj.get("customer"))
    status = obj.get("status")
    if status not in billing.SUBSCRIPTION_STATUSES:
        logger.info(f"Subscription {obj.get('id')} moved to untracked status {status}")
        return "ignored"

    user = await _user_for_customer(session, customer_id)
    if user is None:
        logger.warning(f"Subscription updated for unmapped customer {customer_id}")
        return "ignored"

    await billing.update_subscription(
        session,
        user.id,
        obj["id"],
        status,
        current_period_end=_period_end(obj),
    )
    return "updated"


async def _on_payment_failed(session: AsyncSession, obj: Dict[str, Any]) -> str:
    logger.warning(
        f"Payment failed for invoice {obj.get('id')} (customer {_as_id(obj.get('customer'))})"
    )
    return "logged"


HANDLERS: Dict[str, Handler] = {
    "checkout.session.completed": _on_checkout_completed,
    "customer.subscription.deleted": _on_subscription_deleted,
    "customer.subscription.updated": _on_subscription_updated,
    "invoice.payment_failed": _on_payment_failed,
}


async def dispatch_event(session: AsyncSession, event: Dict[str, Any]) -> str:
    """Apply a verified event and return a short description of what happened."""

    event_type = event.get("type", "")
    logger.info(f"Received webhook {event.get('id')}: {event_type}")

    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled event type: {event_type}")
        return "unhandled"

    obj = (event.get("data") or {}).get("object") or {}
    return await handler(session, obj)


async def _user_for_customer(session: AsyncSession, customer_id: Optional[str]):
    if not customer_id:
        return None
    return await billing.find_user_by_customer(session, customer_id)


def _as_id(value: Any) -> Optional[str]:
    """Stripe fields may hold either an id or an expanded object."""

    if isinstance(value, dict):
        return value.get("id")
    return value


def _period_end(obj: Dict[str, Any]) -> Optional[datetime]:
    timestamp = obj.get("current_period_end")
    if timestamp is None:
        items = (obj.get("items") or {}).get("data") or []
        if items:
            timestamp = items[0].get("current_period_end")
    if timestamp is None:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
