"""Application wiring for the billing service and webhook reconciler."""
from __future__ import annotations

import logging
from functools import lru_cache
from uuid import uuid4

from ..billing import (
    BillingAuditEvent,
    BillingConfig,
    BillingEventLogger,
    BillingGateway,
    BillingService,
    CheckoutSession,
    PortalSession,
    StripeBillingGateway,
    SubscriptionObject,
    UpstreamRequestError,
    WebhookReconciler,
    load_billing_config,
)
from ..entitlements.models import Tier
from .entitlements import get_entitlement_store


logger = logging.getLogger("billing")


class LoggingBillingEventLogger(BillingEventLogger):
    """Simple event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s user=%s subscription=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.subscription_id,
            event.metadata,
        )


class LocalSandboxBillingGateway(BillingGateway):
    """Minimal gateway for local development when no Stripe key is configured."""

    def create_customer(self, *, user_id: str) -> str:
        customer_id = f"cus_local_{uuid4().hex[:16]}"
        logger.info("Sandbox customer %s created for user %s", customer_id, user_id)
        return customer_id

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        user_id: str,
        tier: Tier,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        session_id = f"cs_local_{uuid4().hex}"
        return CheckoutSession(
            session_id=session_id,
            url=f"https://billing.local/checkout/{session_id}",
        )

    def create_portal_session(self, *, customer_id: str, return_url: str) -> PortalSession:
        return PortalSession(url=f"https://billing.local/portal/{customer_id}")

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        raise UpstreamRequestError("Subscription lookups require a real billing provider")


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


@lru_cache(maxsize=1)
def get_billing_gateway() -> BillingGateway:
    config = get_billing_config()
    if config.uses_stripe:
        return StripeBillingGateway(config)
    logger.warning("STRIPE_SECRET_KEY not set; using local sandbox billing gateway")
    return LocalSandboxBillingGateway()


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    return BillingService(
        store=get_entitlement_store(),
        gateway=get_billing_gateway(),
        config=get_billing_config(),
        event_logger=LoggingBillingEventLogger(),
    )


@lru_cache(maxsize=1)
def get_webhook_reconciler() -> WebhookReconciler:
    return WebhookReconciler(
        store=get_entitlement_store(),
        gateway=get_billing_gateway(),
        config=get_billing_config(),
        event_logger=LoggingBillingEventLogger(),
    )


__all__ = [
    "LocalSandboxBillingGateway",
    "LoggingBillingEventLogger",
    "get_billing_config",
    "get_billing_gateway",
    "get_billing_service",
    "get_webhook_reconciler",
]
