"""Usage metering and quota decisions layered on the entitlement store."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from .catalog import get_tier_limits
from .models import (
    Limit,
    SubscriptionStatus,
    Tier,
    TierLimits,
    UsageCounter,
    UsageLimits,
    UserSubscription,
    month_key,
)
from .store import EntitlementStore


@dataclass(frozen=True)
class UsageCheck:
    """Outcome of a quota check; ``remaining`` is ``None`` when unbounded."""

    allowed: bool
    remaining: Optional[int]
    limit: Limit
    used: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "limit": self.limit.to_wire(),
            "used": self.used,
        }


@dataclass(frozen=True)
class TierInfo:
    """Read-only snapshot of a user's tier, limits and current usage."""

    subscription: UserSubscription
    limits: TierLimits
    usage: UsageLimits
    current_items: int

    @property
    def tier(self) -> Tier:
        return self.subscription.tier

    def to_wire(self) -> Dict[str, Any]:
        subscription = self.subscription
        billing: Optional[Dict[str, Any]] = None
        if subscription.stripe_customer_id:
            billing = {
                "status": subscription.subscription_status.value
                if subscription.subscription_status
                else None,
                "stripeCustomerId": subscription.stripe_customer_id,
                "stripeSubscriptionId": subscription.stripe_subscription_id,
                "subscriptionEndDate": subscription.subscription_end_date.isoformat()
                if subscription.subscription_end_date
                else None,
            }
        return {
            "tier": subscription.tier.value,
            "limits": self.limits.to_wire(),
            "usage": {"currentItems": self.current_items, **self.usage.to_wire()},
            "subscription": billing,
        }


@dataclass(frozen=True)
class SubscriptionSummary:
    tier: Tier
    status: Optional[SubscriptionStatus]

    @property
    def is_paid(self) -> bool:
        return self.tier != Tier.FREE

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class UsageMeter:
    """Decides whether metered actions are allowed in the current month.

    Tier is read from the subscription row on every call, so an upgrade or
    downgrade applied by a webhook takes effect on the next request.
    """

    def __init__(
        self,
        store: EntitlementStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def store(self) -> EntitlementStore:
        return self._store

    def current_month(self) -> str:
        return month_key(self._clock())

    def resolve(self, user_id: str) -> Tuple[UserSubscription, TierLimits]:
        subscription = self._store.get_or_create(user_id)
        return subscription, get_tier_limits(subscription.tier)

    def can_add_items(self, user_id: str, current_item_count: int) -> UsageCheck:
        _, limits = self.resolve(user_id)
        return UsageCheck(
            allowed=limits.max_items.allows(current_item_count),
            remaining=limits.max_items.remaining(current_item_count),
            limit=limits.max_items,
            used=current_item_count,
        )

    def can_scan_receipt(self, user_id: str) -> UsageCheck:
        return self._check_monthly(user_id, UsageCounter.RECEIPT_SCANS)

    def can_use_ai(self, user_id: str) -> UsageCheck:
        return self._check_monthly(user_id, UsageCounter.AI_CALLS)

    def can_use_voice_assistant(self, user_id: str) -> bool:
        _, limits = self.resolve(user_id)
        return limits.voice_assistant

    def has_multi_device(self, user_id: str) -> bool:
        _, limits = self.resolve(user_id)
        return limits.multi_device

    def has_shared_inventory(self, user_id: str) -> bool:
        _, limits = self.resolve(user_id)
        return limits.shared_inventory

    def record(self, user_id: str, counter: UsageCounter) -> int:
        """Unconditionally advance a counter for the current month."""

        return self._store.increment_usage(user_id, self.current_month(), counter)

    def consume(self, user_id: str, counter: UsageCounter) -> UsageCheck:
        """Check the monthly quota and advance the counter in one step.

        Finite ceilings use the store's conditional increment, so concurrent
        callers can never push the counter past the ceiling.
        """

        _, limits = self.resolve(user_id)
        limit = limits.monthly_limit(counter)
        month = self.current_month()

        if limit.ceiling is None:
            used = self._store.increment_usage(user_id, month, counter)
            return UsageCheck(allowed=True, remaining=None, limit=limit, used=used)

        used = self._store.try_increment_usage(user_id, month, counter, limit.ceiling)
        if used is None:
            current = self._store.get_usage(user_id, month).count(counter)
            return UsageCheck(allowed=False, remaining=0, limit=limit, used=current)
        return UsageCheck(allowed=True, remaining=limit.remaining(used), limit=limit, used=used)

    def usage(self, user_id: str) -> UsageLimits:
        return self._store.get_usage(user_id, self.current_month())

    def tier_info(self, user_id: str, current_item_count: int) -> TierInfo:
        subscription, limits = self.resolve(user_id)
        return TierInfo(
            subscription=subscription,
            limits=limits,
            usage=self.usage(user_id),
            current_items=current_item_count,
        )

    def summary(self, user_id: str) -> SubscriptionSummary:
        subscription = self._store.get_or_create(user_id)
        return SubscriptionSummary(tier=subscription.tier, status=subscription.subscription_status)

    def _check_monthly(self, user_id: str, counter: UsageCounter) -> UsageCheck:
        _, limits = self.resolve(user_id)
        limit = limits.monthly_limit(counter)
        used = self.usage(user_id).count(counter)
        return UsageCheck(
            allowed=limit.allows(used),
            remaining=limit.remaining(used),
            limit=limit,
            used=used,
        )


__all__ = ["SubscriptionSummary", "TierInfo", "UsageCheck", "UsageMeter"]
