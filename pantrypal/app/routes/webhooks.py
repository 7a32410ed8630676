"""Inbound billing-provider webhook endpoint."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from ..billing import RETRYABLE_ERRORS, InvalidSignatureError
from ..schemas.billing import WebhookAck
from ..services.billing import get_webhook_reconciler


logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def receive_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> WebhookAck:
    """Verify and apply a provider event.

    Answers 2xx for every verified event, including no-ops, so the provider
    stops redelivering. Signature failures answer 400 and failures on our
    side answer 503 so the provider retries.
    """

    if not stripe_signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe-Signature header")

    payload = await request.body()
    reconciler = get_webhook_reconciler()
    try:
        result = await run_in_threadpool(reconciler.handle, payload, stripe_signature)
    except InvalidSignatureError as exc:
        logger.warning("Rejected webhook: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature") from exc
    except RETRYABLE_ERRORS as exc:
        logger.error("Webhook deferred for redelivery: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook processing temporarily unavailable",
        ) from exc

    logger.info(
        "Webhook %s (%s) %s user=%s",
        result.event_type,
        result.event_id,
        result.outcome.value,
        result.user_id,
    )
    return WebhookAck(received=True)
