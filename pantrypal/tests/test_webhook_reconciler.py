from __future__ import annotations

import time
from datetime import datetime, timezone

import pytest

from pantrypal.app.billing import (
    BillingAuditEventType,
    BillingConfig,
    InvalidSignatureError,
    MisconfiguredError,
    UpstreamRequestError,
    UpstreamUnavailableError,
    WebhookOutcome,
    WebhookReconciler,
)
from pantrypal.app.entitlements import (
    EntitlementStoreError,
    SubscriptionStatus,
    SubscriptionUpdate,
    Tier,
)


@pytest.fixture
def reconciler(store, gateway, billing_config, event_logger) -> WebhookReconciler:
    return WebhookReconciler(store, gateway, billing_config, event_logger)


def _checkout_session(user_id="user-1", tier="pro", subscription="sub_123", customer="cus_1"):
    metadata = {}
    if user_id is not None:
        metadata["userId"] = user_id
    if tier is not None:
        metadata["tier"] = tier
    return {
        "id": "cs_1",
        "object": "checkout.session",
        "customer": customer,
        "subscription": subscription,
        "metadata": metadata,
    }


def _seed_paid(store, user_id="user-1", tier=Tier.PRO, subscription_id="sub_123"):
    store.get_or_create(user_id)
    return store.update(
        user_id,
        SubscriptionUpdate(
            tier=tier,
            stripe_customer_id="cus_1",
            stripe_subscription_id=subscription_id,
            stripe_price_id="price_pro_month",
            subscription_status=SubscriptionStatus.ACTIVE,
        ),
    )


def test_checkout_completed_upgrades_user(reconciler, store, gateway, event_logger, sign, make_event, subscription_payload):
    gateway.add_subscription(subscription_payload())
    payload = make_event("checkout.session.completed", _checkout_session())

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.APPLIED
    row = store.get("user-1")
    assert row.tier == Tier.PRO
    assert row.stripe_customer_id == "cus_1"
    assert row.stripe_subscription_id == "sub_123"
    assert row.stripe_price_id == "price_pro_month"
    assert row.subscription_status == SubscriptionStatus.ACTIVE
    assert row.subscription_start_date == datetime.fromtimestamp(1741000000, tz=timezone.utc)
    assert row.subscription_end_date == datetime.fromtimestamp(1743600000, tz=timezone.utc)
    assert event_logger.events[-1].event_type == BillingAuditEventType.SUBSCRIPTION_ACTIVATED


def test_checkout_completed_is_idempotent(reconciler, store, gateway, sign, make_event, subscription_payload):
    gateway.add_subscription(subscription_payload())
    payload = make_event("checkout.session.completed", _checkout_session())

    reconciler.handle(payload.encode(), sign(payload))
    first = store.get("user-1").model_dump()
    reconciler.handle(payload.encode(), sign(payload))

    assert store.get("user-1").model_dump() == first


@pytest.mark.parametrize(
    "session",
    [
        _checkout_session(user_id=None),
        _checkout_session(tier=None),
        _checkout_session(tier="enterprise"),
        _checkout_session(subscription=None),
    ],
)
def test_checkout_with_incomplete_data_is_a_noop(reconciler, store, gateway, sign, make_event, session):
    payload = make_event("checkout.session.completed", session)

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.SKIPPED
    assert gateway.retrieved == []
    assert store.get("user-1") is None


@pytest.mark.parametrize("tier", [Tier.PRO, Tier.FAMILY])
def test_subscription_deleted_downgrades_to_free(reconciler, store, sign, make_event, subscription_payload, tier):
    _seed_paid(store, tier=tier)
    payload = make_event(
        "customer.subscription.deleted",
        subscription_payload(status="canceled", tier=tier.value),
    )

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.APPLIED
    row = store.get("user-1")
    assert row.tier == Tier.FREE
    assert row.stripe_subscription_id is None
    assert row.stripe_price_id is None
    assert row.subscription_status is None
    assert row.subscription_end_date is None
    assert row.stripe_customer_id == "cus_1"


def test_deleted_event_for_replaced_subscription_is_ignored(reconciler, store, sign, make_event, subscription_payload):
    _seed_paid(store, subscription_id="sub_new")
    payload = make_event("customer.subscription.deleted", subscription_payload("sub_old", status="canceled"))

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.SKIPPED
    assert store.get("user-1").tier == Tier.PRO


def test_subscription_updated_changes_tier_and_price(reconciler, store, gateway, sign, make_event, subscription_payload):
    _seed_paid(store)
    subscription = subscription_payload(tier="family", price_id="price_family_month", status="trialing")
    gateway.add_subscription(subscription)
    payload = make_event("customer.subscription.updated", subscription)

    reconciler.handle(payload.encode(), sign(payload))

    row = store.get("user-1")
    assert row.tier == Tier.FAMILY
    assert row.stripe_price_id == "price_family_month"
    assert row.subscription_status == SubscriptionStatus.TRIALING
    assert row.subscription_end_date == datetime.fromtimestamp(1743600000, tz=timezone.utc)


def test_subscription_updated_without_tier_keeps_tier(reconciler, store, gateway, sign, make_event, subscription_payload):
    _seed_paid(store)
    subscription = subscription_payload(tier=None, status="unpaid")
    gateway.add_subscription(subscription)
    payload = make_event("customer.subscription.updated", subscription)

    reconciler.handle(payload.encode(), sign(payload))

    row = store.get("user-1")
    assert row.tier == Tier.PRO
    assert row.subscription_status == SubscriptionStatus.UNPAID


def test_subscription_updated_to_terminal_status_downgrades(reconciler, store, gateway, sign, make_event, subscription_payload):
    _seed_paid(store)
    subscription = subscription_payload(status="incomplete_expired")
    gateway.add_subscription(subscription)
    payload = make_event("customer.subscription.updated", subscription)

    reconciler.handle(payload.encode(), sign(payload))

    assert store.get("user-1").tier == Tier.FREE


def test_subscription_event_without_user_is_a_noop(reconciler, store, sign, make_event, subscription_payload):
    payload = make_event("customer.subscription.updated", subscription_payload(user_id=None))

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.SKIPPED
    assert store.get("user-1") is None


def test_payment_failed_marks_past_due_without_downgrade(reconciler, store, gateway, event_logger, sign, make_event, subscription_payload):
    _seed_paid(store)
    gateway.add_subscription(subscription_payload())
    invoice = {
        "id": "in_1",
        "object": "invoice",
        "customer": "cus_1",
        "parent": {"subscription_details": {"subscription": "sub_123"}},
    }
    payload = make_event("invoice.payment_failed", invoice)

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.APPLIED
    row = store.get("user-1")
    assert row.tier == Tier.PRO
    assert row.subscription_status == SubscriptionStatus.PAST_DUE
    assert gateway.retrieved == ["sub_123"]
    assert event_logger.events[-1].event_type == BillingAuditEventType.PAYMENT_FAILED


def test_invoice_paid_is_informational(reconciler, store, sign, make_event):
    before = _seed_paid(store)
    payload = make_event("invoice.paid", {"id": "in_1", "subscription": "sub_123"})

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.IGNORED
    assert store.get("user-1") == before


def test_unknown_event_types_are_ignored(reconciler, store, sign, make_event):
    payload = make_event("customer.created", {"id": "cus_9"})

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.IGNORED
    assert store.get("user-1") is None


def test_invalid_signature_rejected_before_parsing(reconciler, store, gateway, sign, make_event):
    payload = make_event("checkout.session.completed", _checkout_session())

    with pytest.raises(InvalidSignatureError):
        reconciler.handle(payload.encode(), sign(payload, secret="whsec_wrong"))
    with pytest.raises(InvalidSignatureError):
        reconciler.handle(b"not json at all", sign("something else"))

    assert gateway.retrieved == []
    assert store.get("user-1") is None


def test_stale_signature_timestamp_rejected(reconciler, sign, make_event):
    payload = make_event("invoice.paid", {"id": "in_1"})

    with pytest.raises(InvalidSignatureError):
        reconciler.handle(payload.encode(), sign(payload, timestamp=int(time.time()) - 3600))


def test_provider_outage_propagates_for_redelivery(reconciler, store, gateway, sign, make_event):
    gateway.retrieve_error = UpstreamUnavailableError("timed out")
    payload = make_event("checkout.session.completed", _checkout_session())

    with pytest.raises(UpstreamUnavailableError):
        reconciler.handle(payload.encode(), sign(payload))
    assert store.get("user-1") is None


def test_store_failure_propagates_for_redelivery(store, gateway, billing_config, event_logger, sign, make_event, subscription_payload):
    class BrokenStore:
        def get(self, user_id):
            raise EntitlementStoreError("database unavailable")

    reconciler = WebhookReconciler(BrokenStore(), gateway, billing_config, event_logger)
    payload = make_event("customer.subscription.deleted", subscription_payload())

    with pytest.raises(EntitlementStoreError):
        reconciler.handle(payload.encode(), sign(payload))


def test_other_processing_errors_are_swallowed(reconciler, store, gateway, sign, make_event):
    gateway.retrieve_error = UpstreamRequestError("No such subscription")
    payload = make_event("checkout.session.completed", _checkout_session())

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.FAILED
    assert store.get("user-1") is None


def test_missing_webhook_secret_is_misconfiguration(store, gateway, event_logger, sign, make_event):
    reconciler = WebhookReconciler(store, gateway, BillingConfig(), event_logger)
    payload = make_event("invoice.paid", {"id": "in_1"})

    with pytest.raises(MisconfiguredError):
        reconciler.handle(payload.encode(), sign(payload))


def _invoice(subscription_id="sub_123"):
    return {
        "id": "in_1",
        "object": "invoice",
        "customer": "cus_1",
        "parent": {"subscription_details": {"subscription": subscription_id}},
    }


@pytest.fixture
def cancelled(reconciler, store, gateway, sign, make_event, subscription_payload):
    """A paid user whose subscription the provider has cancelled and reported."""

    _seed_paid(store)
    gateway.add_subscription(subscription_payload(status="canceled"))
    payload = make_event(
        "customer.subscription.deleted",
        subscription_payload(status="canceled"),
        event_id="evt_2",
    )
    reconciler.handle(payload.encode(), sign(payload))
    assert store.get("user-1").tier == Tier.FREE
    return store


def test_late_update_after_delete_keeps_user_on_free(reconciler, cancelled, sign, make_event, subscription_payload):
    payload = make_event("customer.subscription.updated", subscription_payload(status="active"), event_id="evt_1")

    reconciler.handle(payload.encode(), sign(payload))

    row = cancelled.get("user-1")
    assert row.tier == Tier.FREE
    assert row.stripe_subscription_id is None
    assert row.subscription_status is None


def test_late_payment_failure_after_delete_is_skipped(reconciler, cancelled, sign, make_event):
    payload = make_event("invoice.payment_failed", _invoice(), event_id="evt_1")

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.SKIPPED
    row = cancelled.get("user-1")
    assert row.tier == Tier.FREE
    assert row.subscription_status is None


def test_replayed_checkout_after_delete_is_skipped(reconciler, cancelled, sign, make_event):
    payload = make_event("checkout.session.completed", _checkout_session(), event_id="evt_0")

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.SKIPPED
    row = cancelled.get("user-1")
    assert row.tier == Tier.FREE
    assert row.stripe_subscription_id is None


def test_update_applies_provider_state_over_payload(reconciler, store, gateway, sign, make_event, subscription_payload):
    _seed_paid(store)
    gateway.add_subscription(subscription_payload(status="past_due"))
    payload = make_event("customer.subscription.updated", subscription_payload(status="active"))

    reconciler.handle(payload.encode(), sign(payload))

    row = store.get("user-1")
    assert row.tier == Tier.PRO
    assert row.subscription_status == SubscriptionStatus.PAST_DUE
    assert gateway.retrieved == ["sub_123"]


def test_payment_failure_without_current_subscription_is_skipped(reconciler, store, gateway, sign, make_event, subscription_payload):
    store.get_or_create("user-1")
    gateway.add_subscription(subscription_payload())
    payload = make_event("invoice.payment_failed", _invoice())

    result = reconciler.handle(payload.encode(), sign(payload))

    assert result.outcome == WebhookOutcome.SKIPPED
    assert store.get("user-1").subscription_status is None
