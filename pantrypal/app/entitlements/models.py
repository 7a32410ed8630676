"""Domain models for tiers, subscriptions and monthly usage."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Tier(str, Enum):
    """Canonical subscription tiers."""

    FREE = "free"
    PRO = "pro"
    FAMILY = "family"


class BillingInterval(str, Enum):
    """Billing frequencies offered at checkout."""

    MONTH = "month"
    YEAR = "year"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle as reported by the billing provider."""

    ACTIVE = "active"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    UNPAID = "unpaid"


class UsageCounter(str, Enum):
    """Metered counters tracked per user and calendar month."""

    RECEIPT_SCANS = "receipt_scans"
    AI_CALLS = "ai_calls"
    VOICE_SESSIONS = "voice_sessions"


@dataclass(frozen=True)
class Limit:
    """A quota ceiling that is either a finite count or unlimited."""

    ceiling: Optional[int] = None

    def __post_init__(self) -> None:
        if self.ceiling is not None and self.ceiling < 0:
            raise ValueError("ceiling must be >= 0")

    @classmethod
    def finite(cls, ceiling: int) -> "Limit":
        return cls(ceiling=ceiling)

    @classmethod
    def unlimited(cls) -> "Limit":
        return cls(ceiling=None)

    @property
    def is_unlimited(self) -> bool:
        return self.ceiling is None

    def allows(self, used: int) -> bool:
        """Return whether one more unit may be consumed after ``used`` units."""

        if self.ceiling is None:
            return True
        return used < self.ceiling

    def remaining(self, used: int) -> Optional[int]:
        """Units left before the ceiling, or ``None`` when unbounded."""

        if self.ceiling is None:
            return None
        return max(self.ceiling - used, 0)

    def to_wire(self) -> int:
        return -1 if self.ceiling is None else self.ceiling


UNLIMITED = Limit.unlimited()


@dataclass(frozen=True)
class TierLimits:
    """Quantitative ceilings and feature switches granted by a tier."""

    max_items: Limit
    receipt_scans_per_month: Limit
    ai_calls_per_month: Limit
    voice_assistant: bool
    multi_device: bool
    shared_inventory: bool
    max_family_members: int

    def monthly_limit(self, counter: UsageCounter) -> Limit:
        if counter is UsageCounter.RECEIPT_SCANS:
            return self.receipt_scans_per_month
        if counter is UsageCounter.AI_CALLS:
            return self.ai_calls_per_month
        # Voice sessions are tracked but gated by the boolean flag only.
        return UNLIMITED

    def to_wire(self) -> Dict[str, Any]:
        return {
            "maxItems": self.max_items.to_wire(),
            "receiptScansPerMonth": self.receipt_scans_per_month.to_wire(),
            "aiCallsPerMonth": self.ai_calls_per_month.to_wire(),
            "voiceAssistant": self.voice_assistant,
            "multiDevice": self.multi_device,
            "sharedInventory": self.shared_inventory,
            "maxFamilyMembers": self.max_family_members,
        }


class UserSubscription(BaseModel):
    """Entitlement state for a single user, one row per user."""

    id: str
    user_id: str
    tier: Tier = Tier.FREE
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    subscription_status: Optional[SubscriptionStatus] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @property
    def is_paid(self) -> bool:
        return self.tier != Tier.FREE

    @property
    def is_active(self) -> bool:
        return self.subscription_status == SubscriptionStatus.ACTIVE

    def apply(self, update: "SubscriptionUpdate", *, now: datetime) -> "UserSubscription":
        """Return a copy with the fields present in ``update`` applied."""

        changes = update.changes()
        merged = self.model_copy(update={**changes, "updated_at": now})
        if merged.stripe_subscription_id is None and merged.tier != Tier.FREE:
            raise ValueError("tier must be free while no subscription is attached")
        return merged


class SubscriptionUpdate(BaseModel):
    """Partial update of the billing-derived fields of a subscription row.

    Only fields explicitly passed are applied; an explicit ``None`` clears the
    column while an omitted field leaves it untouched.
    """

    tier: Optional[Tier] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    subscription_status: Optional[SubscriptionStatus] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    def changes(self) -> Dict[str, Any]:
        changes = {name: getattr(self, name) for name in self.model_fields_set}
        if "tier" in changes and changes["tier"] is None:
            # Tier is not nullable; a ``None`` here means "leave unchanged".
            changes.pop("tier")
        return changes

    @property
    def is_empty(self) -> bool:
        return not self.changes()


class UsageLimits(BaseModel):
    """Metered usage for one user during one calendar month."""

    id: str
    user_id: str
    month: str = Field(pattern=r"^\d{4}-\d{2}$")
    receipt_scans: int = Field(default=0, ge=0)
    ai_calls: int = Field(default=0, ge=0)
    voice_sessions: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def count(self, counter: UsageCounter) -> int:
        return int(getattr(self, counter.value))

    def to_wire(self) -> Dict[str, int]:
        return {
            "receiptScansThisMonth": self.receipt_scans,
            "aiCallsThisMonth": self.ai_calls,
            "voiceSessionsThisMonth": self.voice_sessions,
        }


def month_key(moment: datetime) -> str:
    """Return the ``YYYY-MM`` usage period containing ``moment`` (UTC)."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m")
