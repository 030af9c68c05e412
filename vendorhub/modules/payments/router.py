"""Payment processor webhook router."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Request

from vendorhub.core.metrics import WEBHOOK_EVENTS_TOTAL
from vendorhub.modules.payments.gateway import StripePaymentGateway, WebhookSignatureError, get_payment_gateway
from vendorhub.modules.payments.webhooks import WebhookReconciler, get_webhook_reconciler
from vendorhub.shared.exceptions import ValidationException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    gateway: StripePaymentGateway = Depends(get_payment_gateway),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> dict[str, bool]:
    """Verify and apply a Stripe event; the raw body is required for verification."""
    payload = await request.body()
    try:
        event = gateway.construct_webhook_event(payload, stripe_signature)
    except WebhookSignatureError as exc:
        WEBHOOK_EVENTS_TOTAL.labels(event_type="unknown", outcome="rejected").inc()
        logger.warning("Stripe webhook rejected: %s", exc)
        raise ValidationException(f"Webhook Error: {exc}", error_key="INVALID_WEBHOOK_SIGNATURE") from exc

    await reconciler.handle_event(event)
    return {"received": True}
