"""Webhook authenticity verification."""
from __future__ import annotations

from typing import Optional

import stripe
from pydantic import ValidationError

from .exceptions import InvalidSignatureError
from .models import WebhookEvent


def construct_event(
    payload: bytes,
    signature: Optional[str],
    *,
    secret: str,
    tolerance: int = 300,
) -> WebhookEvent:
    """Verify the ``Stripe-Signature`` header and parse the event envelope.

    Nothing in the payload is interpreted before the signature checks out.
    """

    if not signature:
        raise InvalidSignatureError("Missing Stripe-Signature header")

    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidSignatureError("Webhook payload is not valid UTF-8") from exc

    try:
        stripe.WebhookSignature.verify_header(text, signature, secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        raise InvalidSignatureError(f"Invalid signature: {exc}") from exc

    try:
        return WebhookEvent.model_validate_json(text)
    except ValidationError as exc:
        raise InvalidSignatureError("Webhook payload is not a valid event") from exc


__all__ = ["construct_event"]
