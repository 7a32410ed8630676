"""Reconciles entitlement state with billing-provider webhook events."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..entitlements.exceptions import EntitlementStoreError
from ..entitlements.models import SubscriptionStatus, SubscriptionUpdate, Tier, UserSubscription
from ..entitlements.store import EntitlementStore
from .config import BillingConfig
from .exceptions import MisconfiguredError, UpstreamUnavailableError
from .gateway import BillingGateway
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    CheckoutMetadata,
    CheckoutSessionObject,
    InvoiceObject,
    SubscriptionMetadata,
    SubscriptionObject,
    WebhookEvent,
    WebhookEventType,
    parse_metadata,
)
from .service import BillingEventLogger
from .webhooks import construct_event


logger = logging.getLogger("billing")

_Model = TypeVar("_Model", bound=BaseModel)

# Failures the provider should retry: the event is fine, our side is not.
RETRYABLE_ERRORS = (UpstreamUnavailableError, EntitlementStoreError, MisconfiguredError)

_DOWNGRADE = SubscriptionUpdate(
    tier=Tier.FREE,
    stripe_subscription_id=None,
    stripe_price_id=None,
    subscription_status=None,
    subscription_start_date=None,
    subscription_end_date=None,
)


class WebhookOutcome(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class WebhookResult:
    """What happened to a single delivered event."""

    event_id: str
    event_type: str
    outcome: WebhookOutcome
    user_id: Optional[str] = None
    reason: Optional[str] = None


def _is_stale(current: Optional[UserSubscription], subscription_id: str) -> bool:
    return (
        current is not None
        and current.stripe_subscription_id is not None
        and current.stripe_subscription_id != subscription_id
    )


class WebhookReconciler:
    """Applies verified provider events to the entitlement store.

    Every mutation is an upsert keyed by user, so redelivered events converge
    to the same row. Malformed or irrelevant events are logged and skipped;
    only retryable failures propagate to the caller.
    """

    def __init__(
        self,
        store: EntitlementStore,
        gateway: BillingGateway,
        config: BillingConfig,
        event_logger: BillingEventLogger,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._config = config
        self._event_logger = event_logger
        self._handlers: Dict[str, Callable[[WebhookEvent], WebhookResult]] = {
            WebhookEventType.CHECKOUT_SESSION_COMPLETED.value: self._checkout_completed,
            WebhookEventType.INVOICE_PAID.value: self._invoice_paid,
            WebhookEventType.INVOICE_PAYMENT_FAILED.value: self._payment_failed,
            WebhookEventType.SUBSCRIPTION_UPDATED.value: self._subscription_updated,
            WebhookEventType.SUBSCRIPTION_DELETED.value: self._subscription_deleted,
        }

    def verify(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        return construct_event(
            payload,
            signature,
            secret=self._config.webhook_secret(),
            tolerance=self._config.webhook_tolerance_seconds,
        )

    def handle(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """Verify a raw delivery and apply it."""

        return self.apply(self.verify(payload, signature))

    def apply(self, event: WebhookEvent) -> WebhookResult:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info("Ignoring webhook %s (%s)", event.type, event.id)
            return WebhookResult(event.id, event.type, WebhookOutcome.IGNORED, reason="unhandled type")

        logger.info("Processing webhook %s (%s)", event.type, event.id)
        try:
            return handler(event)
        except RETRYABLE_ERRORS:
            logger.warning("Retryable failure processing webhook %s (%s)", event.type, event.id)
            raise
        except Exception:
            logger.exception("Failed to process webhook %s (%s)", event.type, event.id)
            return WebhookResult(event.id, event.type, WebhookOutcome.FAILED, reason="processing error")

    def _checkout_completed(self, event: WebhookEvent) -> WebhookResult:
        session = self._parse(CheckoutSessionObject, event)
        if session is None:
            return self._skip(event, "malformed checkout session")

        metadata = parse_metadata(CheckoutMetadata, session.metadata)
        if metadata is None:
            return self._skip(event, "checkout metadata missing userId or tier")
        if not session.subscription:
            return self._skip(event, "checkout without subscription", metadata.user_id)

        subscription = self._gateway.retrieve_subscription(session.subscription)
        if subscription.is_terminal:
            return self._skip(event, "subscription already ended", metadata.user_id)

        fields = {
            "tier": metadata.tier,
            "stripe_subscription_id": subscription.id,
            "stripe_price_id": subscription.price_id,
            "subscription_status": subscription.status,
            "subscription_start_date": subscription.period_start,
            "subscription_end_date": subscription.period_end,
        }
        customer_id = session.customer or subscription.customer
        if customer_id:
            fields["stripe_customer_id"] = customer_id

        self._upsert(metadata.user_id, SubscriptionUpdate(**fields))
        self._audit(
            BillingAuditEventType.SUBSCRIPTION_ACTIVATED,
            metadata.user_id,
            subscription.id,
            tier=metadata.tier.value,
        )
        return self._applied(event, metadata.user_id)

    def _invoice_paid(self, event: WebhookEvent) -> WebhookResult:
        # Payment is already reflected by the subscription status.
        logger.info("Invoice paid (%s); no entitlement change", event.id)
        return WebhookResult(event.id, event.type, WebhookOutcome.IGNORED, reason="informational")

    def _payment_failed(self, event: WebhookEvent) -> WebhookResult:
        invoice = self._parse(InvoiceObject, event)
        if invoice is None or not invoice.subscription_id:
            return self._skip(event, "invoice without subscription")

        subscription = self._gateway.retrieve_subscription(invoice.subscription_id)
        metadata = parse_metadata(SubscriptionMetadata, subscription.metadata)
        if metadata is None:
            return self._skip(event, "subscription metadata missing userId")

        if subscription.is_terminal:
            return self._skip(event, "subscription already ended", metadata.user_id)
        current = self._store.get(metadata.user_id)
        if current is None or current.stripe_subscription_id != subscription.id:
            return self._skip(event, "subscription is not the user's current one", metadata.user_id)

        self._upsert(
            metadata.user_id,
            SubscriptionUpdate(subscription_status=SubscriptionStatus.PAST_DUE),
        )
        self._audit(
            BillingAuditEventType.PAYMENT_FAILED,
            metadata.user_id,
            subscription.id,
            invoice_id=invoice.id or "",
        )
        return self._applied(event, metadata.user_id)

    def _subscription_updated(self, event: WebhookEvent) -> WebhookResult:
        subscription = self._parse(SubscriptionObject, event)
        if subscription is None:
            return self._skip(event, "malformed subscription")

        metadata = parse_metadata(SubscriptionMetadata, subscription.metadata)
        if metadata is None:
            return self._skip(event, "subscription metadata missing userId")

        if _is_stale(self._store.get(metadata.user_id), subscription.id):
            return self._skip(event, "event for a replaced subscription", metadata.user_id)

        # Deliveries can arrive out of order; the provider's current state wins.
        subscription = self._gateway.retrieve_subscription(subscription.id)
        if subscription.is_terminal:
            return self._downgrade(event, metadata.user_id, subscription.id)
        metadata = parse_metadata(SubscriptionMetadata, subscription.metadata) or metadata

        fields = {
            "stripe_subscription_id": subscription.id,
            "stripe_price_id": subscription.price_id,
            "subscription_status": subscription.status,
            "subscription_start_date": subscription.period_start,
            "subscription_end_date": subscription.period_end,
        }
        if metadata.tier is not None:
            fields["tier"] = metadata.tier

        self._upsert(metadata.user_id, SubscriptionUpdate(**fields))
        self._audit(
            BillingAuditEventType.SUBSCRIPTION_UPDATED,
            metadata.user_id,
            subscription.id,
            status=subscription.status.value if subscription.status else "",
        )
        return self._applied(event, metadata.user_id)

    def _subscription_deleted(self, event: WebhookEvent) -> WebhookResult:
        subscription = self._parse(SubscriptionObject, event)
        if subscription is None:
            return self._skip(event, "malformed subscription")

        metadata = parse_metadata(SubscriptionMetadata, subscription.metadata)
        if metadata is None:
            return self._skip(event, "subscription metadata missing userId")

        if _is_stale(self._store.get(metadata.user_id), subscription.id):
            return self._skip(event, "event for a replaced subscription", metadata.user_id)

        return self._downgrade(event, metadata.user_id, subscription.id)

    def _downgrade(self, event: WebhookEvent, user_id: str, subscription_id: str) -> WebhookResult:
        # The customer reference is kept so a later checkout reuses it.
        self._upsert(user_id, _DOWNGRADE)
        self._audit(BillingAuditEventType.SUBSCRIPTION_DOWNGRADED, user_id, subscription_id)
        return self._applied(event, user_id)

    def _upsert(self, user_id: str, update: SubscriptionUpdate) -> UserSubscription:
        self._store.get_or_create(user_id)
        updated = self._store.update(user_id, update)
        logger.info(
            "Entitlements updated user=%s tier=%s status=%s",
            user_id,
            updated.tier.value,
            updated.subscription_status.value if updated.subscription_status else None,
        )
        return updated

    def _audit(
        self,
        event_type: BillingAuditEventType,
        user_id: str,
        subscription_id: Optional[str],
        **metadata: str,
    ) -> None:
        self._event_logger.log(
            BillingAuditEvent(
                event_type=event_type,
                user_id=user_id,
                subscription_id=subscription_id,
                metadata=metadata,
            )
        )

    @staticmethod
    def _parse(model: Type[_Model], event: WebhookEvent) -> Optional[_Model]:
        try:
            return model.model_validate(event.payload)
        except ValidationError:
            return None

    @staticmethod
    def _skip(event: WebhookEvent, reason: str, user_id: Optional[str] = None) -> WebhookResult:
        logger.warning("Skipping webhook %s (%s): %s", event.type, event.id, reason)
        return WebhookResult(event.id, event.type, WebhookOutcome.SKIPPED, user_id=user_id, reason=reason)

    @staticmethod
    def _applied(event: WebhookEvent, user_id: str) -> WebhookResult:
        return WebhookResult(event.id, event.type, WebhookOutcome.APPLIED, user_id=user_id)


__all__ = ["RETRYABLE_ERRORS", "WebhookOutcome", "WebhookReconciler", "WebhookResult"]
