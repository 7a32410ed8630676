from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from pantrypal.app.entitlements import (
    InMemoryEntitlementStore,
    NotFoundError,
    SubscriptionStatus,
    SubscriptionUpdate,
    Tier,
    UsageCounter,
    migrate_existing_users_to_free_tier,
)


def test_get_or_create_defaults_to_free(store: InMemoryEntitlementStore) -> None:
    row = store.get_or_create("user-1")

    assert row.tier == Tier.FREE
    assert row.stripe_customer_id is None
    assert row.stripe_subscription_id is None
    assert row.subscription_status is None
    assert store.get_or_create("user-1") == row


def test_concurrent_get_or_create_yields_one_row(store: InMemoryEntitlementStore) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        rows = list(pool.map(lambda _: store.get_or_create("user-1"), range(32)))

    assert len({row.id for row in rows}) == 1
    assert all(row.tier == Tier.FREE for row in rows)


def test_concurrent_increments_are_not_lost(store: InMemoryEntitlementStore) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(
            pool.map(
                lambda _: store.increment_usage("user-1", "2025-03", UsageCounter.RECEIPT_SCANS),
                range(100),
            )
        )

    usage = store.get_usage("user-1", "2025-03")
    assert usage.receipt_scans == 100
    assert usage.ai_calls == 0


def test_conditional_increment_never_passes_ceiling(store: InMemoryEntitlementStore) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(
            pool.map(
                lambda _: store.try_increment_usage("user-1", "2025-03", UsageCounter.RECEIPT_SCANS, 5),
                range(40),
            )
        )

    assert sorted(value for value in results if value is not None) == [1, 2, 3, 4, 5]
    assert results.count(None) == 35
    assert store.get_usage("user-1", "2025-03").receipt_scans == 5


def test_usage_rows_are_scoped_per_month(store: InMemoryEntitlementStore) -> None:
    store.increment_usage("user-1", "2025-03", UsageCounter.AI_CALLS)

    assert store.get_usage("user-1", "2025-04").ai_calls == 0
    assert store.get_usage("user-1", "2025-03").ai_calls == 1


def test_update_requires_existing_row(store: InMemoryEntitlementStore) -> None:
    with pytest.raises(NotFoundError) as exc:
        store.update("ghost", SubscriptionUpdate(stripe_customer_id="cus_1"))

    assert exc.value.user_id == "ghost"


def test_update_applies_partial_fields(store: InMemoryEntitlementStore) -> None:
    store.get_or_create("user-1")
    store.update(
        "user-1",
        SubscriptionUpdate(
            tier=Tier.PRO,
            stripe_customer_id="cus_1",
            stripe_subscription_id="sub_1",
            stripe_price_id="price_1",
            subscription_status=SubscriptionStatus.ACTIVE,
        ),
    )

    updated = store.update("user-1", SubscriptionUpdate(subscription_status=SubscriptionStatus.PAST_DUE))

    assert updated.tier == Tier.PRO
    assert updated.stripe_price_id == "price_1"
    assert updated.subscription_status == SubscriptionStatus.PAST_DUE

    cleared = store.update("user-1", SubscriptionUpdate(stripe_price_id=None))
    assert cleared.stripe_price_id is None
    assert cleared.stripe_customer_id == "cus_1"


def test_migration_backfills_missing_rows(store: InMemoryEntitlementStore) -> None:
    store.get_or_create("existing")

    migrated, skipped = migrate_existing_users_to_free_tier(
        store, ["existing", "new-1", "new-2", "new-1"]
    )

    assert (migrated, skipped) == (2, 1)
    assert store.get("new-2").tier == Tier.FREE

    assert migrate_existing_users_to_free_tier(store, ["existing", "new-1", "new-2"]) == (0, 3)
