"""Thin wrappers over the Stripe SDK for checkout and webhook verification."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import stripe

from src.core.config import settings
from src.core.exceptions import (
    BillingConfigurationError, InvalidSignatureError, PaymentProviderError
)
from src.services.plans import PlanTier


logger = logging.getLogger(__name__)


def _require_secret_key() -> str:
    if not settings.stripe.secret_key:
        raise BillingConfigurationError("Stripe not configured")
    return settings.stripe.secret_key


def create_checkout_session(
    user_id: str,
    *,
    customer_id: Optional[str] = None,
    customer_email: Optional[str] = None,
) -> Dict[str, Any]:
    """Open a subscription checkout for the premium plan.

    ``userId`` and ``plan`` are stored in the session metadata so the
    completion webhook can find the user again.
    """

    api_key = _require_secret_key()
    price_id = settings.stripe.premium_price_id
    if not price_id:
        raise BillingConfigurationError("Premium price not configured")

    app_url = settings.stripe.app_url.rstrip("/")
    params: Dict[str, Any] = {
        "mode": "subscription",
        "payment_method_types": ["card"],
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": f"{app_url}/dashboard?upgrade=success",
        "cancel_url": f"{app_url}/dashboard?upgrade=cancelled",
        "client_reference_id": user_id,
        "metadata": {"userId": user_id, "plan": PlanTier.PREMIUM.value},
    }
    if customer_id:
        params["customer"] = customer_id
    elif customer_email:
        params["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(api_key=api_key, **params)
    except stripe.StripeError as exc:
        logger.error(f"Checkout session creation failed for user {user_id}: {exc}")
        raise PaymentProviderError("Checkout session creation failed") from exc

    return {"url": session.url, "session_id": session.id}


def verify_webhook(payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """Verify a webhook signature and return the decoded event."""

    secret = settings.stripe.webhook_secret
    if not secret:
        raise BillingConfigurationError("Webhook secret not configured")
    if not signature:
        raise InvalidSignatureError("No signature")

    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            signature,
            secret,
            settings.stripe.signature_tolerance,
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning(f"Webhook signature verification failed: {exc}")
        raise InvalidSignatureError("Invalid signature") from exc

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise InvalidSignatureError("Invalid payload") from exc
    if not isinstance(event, dict) or "type" not in event:
        raise InvalidSignatureError("Invalid payload")
    return event
