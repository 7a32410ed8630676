from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from pantrypal.app.billing import (
    BillingAuditEvent,
    BillingConfig,
    CheckoutSession,
    PortalSession,
    SubscriptionObject,
)
from pantrypal.app.entitlements import BillingInterval, InMemoryEntitlementStore, Tier, UsageMeter


FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway:
    def __init__(self) -> None:
        self.customers: List[str] = []
        self.checkouts: List[Dict[str, Any]] = []
        self.portals: List[Dict[str, Any]] = []
        self.subscriptions: Dict[str, SubscriptionObject] = {}
        self.retrieved: List[str] = []
        self.retrieve_error: Optional[Exception] = None
        self.checkout_error: Optional[Exception] = None
        self.portal_error: Optional[Exception] = None

    def create_customer(self, *, user_id: str) -> str:
        self.customers.append(user_id)
        return f"cus_{len(self.customers)}"

    def create_checkout_session(self, **kwargs: Any) -> CheckoutSession:
        if self.checkout_error is not None:
            raise self.checkout_error
        self.checkouts.append(kwargs)
        session_id = f"cs_{len(self.checkouts)}"
        return CheckoutSession(session_id=session_id, url=f"https://checkout.test/{session_id}")

    def create_portal_session(self, *, customer_id: str, return_url: str) -> PortalSession:
        if self.portal_error is not None:
            raise self.portal_error
        self.portals.append({"customer_id": customer_id, "return_url": return_url})
        return PortalSession(url=f"https://portal.test/{customer_id}")

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        self.retrieved.append(subscription_id)
        if self.retrieve_error is not None:
            raise self.retrieve_error
        return self.subscriptions[subscription_id]

    def add_subscription(self, payload: Dict[str, Any]) -> SubscriptionObject:
        subscription = SubscriptionObject.model_validate(payload)
        self.subscriptions[subscription.id] = subscription
        return subscription


class RecordingEventLogger:
    def __init__(self) -> None:
        self.events: List[BillingAuditEvent] = []

    def log(self, event: BillingAuditEvent) -> None:
        self.events.append(event)


class FakeInventory:
    def __init__(self) -> None:
        self.counts: Dict[str, int] = {}

    def count_items(self, user_id: str) -> int:
        return self.counts.get(user_id, 0)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def store(clock) -> InMemoryEntitlementStore:
    return InMemoryEntitlementStore(clock=clock)


@pytest.fixture
def meter(store, clock) -> UsageMeter:
    return UsageMeter(store, clock=clock)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def event_logger() -> RecordingEventLogger:
    return RecordingEventLogger()


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory()


@pytest.fixture
def billing_config() -> BillingConfig:
    return BillingConfig(
        stripe_secret_key=None,
        stripe_webhook_secret=WEBHOOK_SECRET,
        price_ids={
            (Tier.PRO, BillingInterval.MONTH): "price_pro_month",
            (Tier.PRO, BillingInterval.YEAR): "price_pro_year",
            (Tier.FAMILY, BillingInterval.MONTH): "price_family_month",
        },
    )


@pytest.fixture
def sign() -> Callable[..., str]:
    """Build a ``Stripe-Signature`` header for a payload."""

    def _sign(payload: str, *, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        signed = f"{timestamp}.{payload}".encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign


@pytest.fixture
def make_event() -> Callable[..., str]:
    def _make(event_type: str, obj: Dict[str, Any], *, event_id: str = "evt_1") -> str:
        return json.dumps(
            {
                "id": event_id,
                "object": "event",
                "type": event_type,
                "created": 1741000000,
                "livemode": False,
                "data": {"object": obj},
            }
        )

    return _make


@pytest.fixture
def subscription_payload() -> Callable[..., Dict[str, Any]]:
    def _payload(
        subscription_id: str = "sub_123",
        *,
        user_id: Optional[str] = "user-1",
        tier: Optional[str] = "pro",
        status: str = "active",
        price_id: str = "price_pro_month",
        customer: str = "cus_1",
    ) -> Dict[str, Any]:
        metadata: Dict[str, str] = {}
        if user_id is not None:
            metadata["userId"] = user_id
        if tier is not None:
            metadata["tier"] = tier
        return {
            "id": subscription_id,
            "object": "subscription",
            "customer": customer,
            "status": status,
            "metadata": metadata,
            "items": {
                "object": "list",
                "data": [
                    {
                        "id": "si_1",
                        "price": {"id": price_id},
                        "current_period_start": 1741000000,
                        "current_period_end": 1743600000,
                    }
                ],
            },
        }

    return _payload
