"""Core service coordinating checkout and portal flows with the billing provider."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from ..entitlements.models import BillingInterval, SubscriptionUpdate, Tier
from ..entitlements.store import EntitlementStore
from .config import BillingConfig
from .exceptions import NoBillingCustomerError
from .gateway import BillingGateway
from .models import (
    PAID_TIERS,
    BillingAuditEvent,
    BillingAuditEventType,
    CheckoutSession,
    PortalSession,
)


logger = logging.getLogger("billing")


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


@dataclass(slots=True)
class BillingService:
    """Starts provider checkouts and portal sessions on behalf of users."""

    store: EntitlementStore
    gateway: BillingGateway
    config: BillingConfig
    event_logger: BillingEventLogger

    def ensure_customer(self, user_id: str) -> str:
        """Return the user's provider customer id, creating it on first use.

        The new id is persisted before any checkout session references it, so a
        retried checkout never creates a second customer.
        """

        subscription = self.store.get_or_create(user_id)
        if subscription.stripe_customer_id:
            return subscription.stripe_customer_id

        customer_id = self.gateway.create_customer(user_id=user_id)
        self.store.update(user_id, SubscriptionUpdate(stripe_customer_id=customer_id))
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.CUSTOMER_CREATED,
                user_id=user_id,
                metadata={"customer_id": customer_id},
            )
        )
        return customer_id

    def create_checkout_session(
        self,
        *,
        user_id: str,
        tier: Tier,
        billing_interval: BillingInterval,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        if tier not in PAID_TIERS:
            raise ValueError("checkout is only available for paid tiers")

        price_id = self.config.price_for(tier, billing_interval)
        customer_id = self.ensure_customer(user_id)

        session = self.gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            user_id=user_id,
            tier=tier,
            success_url=success_url,
            cancel_url=cancel_url,
        )
        logger.info(
            "Checkout session %s created user=%s tier=%s interval=%s",
            session.session_id,
            user_id,
            tier.value,
            billing_interval.value,
        )
        return session

    def create_portal_session(self, *, user_id: str, return_url: str) -> PortalSession:
        subscription = self.store.get(user_id)
        if subscription is None or not subscription.stripe_customer_id:
            raise NoBillingCustomerError(user_id)
        return self.gateway.create_portal_session(
            customer_id=subscription.stripe_customer_id,
            return_url=return_url,
        )

    def price_listing(self) -> Dict[str, Dict[str, Optional[str]]]:
        return self.config.price_listing()


__all__ = ["BillingEventLogger", "BillingService"]
