"""API schemas for subscription and usage queries."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements import SubscriptionStatus, SubscriptionSummary, Tier, TierInfo, UsageCheck


class TierLimitsOut(BaseModel):
    """Tier ceilings; ``-1`` means unlimited."""

    max_items: int = Field(alias="maxItems")
    receipt_scans_per_month: int = Field(alias="receiptScansPerMonth")
    ai_calls_per_month: int = Field(alias="aiCallsPerMonth")
    voice_assistant: bool = Field(alias="voiceAssistant")
    multi_device: bool = Field(alias="multiDevice")
    shared_inventory: bool = Field(alias="sharedInventory")
    max_family_members: int = Field(alias="maxFamilyMembers")

    model_config = ConfigDict(populate_by_name=True)


class UsageOut(BaseModel):
    current_items: int = Field(alias="currentItems")
    receipt_scans_this_month: int = Field(alias="receiptScansThisMonth")
    ai_calls_this_month: int = Field(alias="aiCallsThisMonth")
    voice_sessions_this_month: int = Field(alias="voiceSessionsThisMonth")

    model_config = ConfigDict(populate_by_name=True)


class BillingDetailsOut(BaseModel):
    status: Optional[SubscriptionStatus] = None
    stripe_customer_id: Optional[str] = Field(alias="stripeCustomerId", default=None)
    stripe_subscription_id: Optional[str] = Field(alias="stripeSubscriptionId", default=None)
    subscription_end_date: Optional[datetime] = Field(alias="subscriptionEndDate", default=None)

    model_config = ConfigDict(populate_by_name=True)


class TierInfoResponse(BaseModel):
    tier: Tier
    limits: TierLimitsOut
    usage: UsageOut
    subscription: Optional[BillingDetailsOut] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_tier_info(cls, info: TierInfo) -> "TierInfoResponse":
        return cls.model_validate(info.to_wire())


class SubscriptionStatusResponse(BaseModel):
    tier: Tier
    is_paid: bool = Field(alias="isPaid")
    is_active: bool = Field(alias="isActive")
    status: Optional[SubscriptionStatus] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_summary(cls, summary: SubscriptionSummary) -> "SubscriptionStatusResponse":
        return cls(
            tier=summary.tier,
            is_paid=summary.is_paid,
            is_active=summary.is_active,
            status=summary.status,
        )


class ItemLimitCheckResponse(BaseModel):
    allowed: bool
    remaining: Optional[int] = None
    current_items: int = Field(alias="currentItems")
    max_items: int = Field(alias="maxItems")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_check(cls, check: UsageCheck) -> "ItemLimitCheckResponse":
        return cls(
            allowed=check.allowed,
            remaining=check.remaining,
            current_items=check.used,
            max_items=check.limit.to_wire(),
        )


class QuotaCheckResponse(BaseModel):
    allowed: bool
    remaining: Optional[int] = None
    used: int
    limit: int

    @classmethod
    def from_check(cls, check: UsageCheck) -> "QuotaCheckResponse":
        return cls(
            allowed=check.allowed,
            remaining=check.remaining,
            used=check.used,
            limit=check.limit.to_wire(),
        )


class FeatureCheckResponse(BaseModel):
    allowed: bool
