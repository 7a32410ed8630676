"""Entitlements domain: tier catalog, subscription state and usage metering."""

from .catalog import TIER_CATALOG, TIER_RANK, get_tier_limits, meets_tier
from .exceptions import EntitlementError, EntitlementStoreError, NotFoundError
from .meter import SubscriptionSummary, TierInfo, UsageCheck, UsageMeter
from .migration import migrate_existing_users_to_free_tier
from .models import (
    UNLIMITED,
    BillingInterval,
    Limit,
    SubscriptionStatus,
    SubscriptionUpdate,
    Tier,
    TierLimits,
    UsageCounter,
    UsageLimits,
    UserSubscription,
    month_key,
)
from .store import EntitlementStore, InMemoryEntitlementStore

__all__ = [
    "TIER_CATALOG",
    "TIER_RANK",
    "UNLIMITED",
    "BillingInterval",
    "EntitlementError",
    "EntitlementStore",
    "EntitlementStoreError",
    "InMemoryEntitlementStore",
    "Limit",
    "NotFoundError",
    "SubscriptionStatus",
    "SubscriptionSummary",
    "SubscriptionUpdate",
    "Tier",
    "TierInfo",
    "TierLimits",
    "UsageCheck",
    "UsageCounter",
    "UsageLimits",
    "UsageMeter",
    "UserSubscription",
    "get_tier_limits",
    "meets_tier",
    "migrate_existing_users_to_free_tier",
    "month_key",
]
