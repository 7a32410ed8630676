"""API schemas for billing endpoints."""
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..billing import CheckoutSession, PortalSession
from ..billing.models import PAID_TIERS
from ..entitlements.models import BillingInterval, Tier


class CheckoutSessionRequest(BaseModel):
    tier: Tier
    billing_interval: BillingInterval = Field(alias="billingInterval", default=BillingInterval.MONTH)
    success_url: str = Field(alias="successUrl", min_length=1)
    cancel_url: str = Field(alias="cancelUrl", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("tier")
    @classmethod
    def _paid_tier(cls, value: Tier) -> Tier:
        if value not in PAID_TIERS:
            raise ValueError("tier must be 'pro' or 'family'")
        return value


class CheckoutSessionResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    url: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, session: CheckoutSession) -> "CheckoutSessionResponse":
        return cls(session_id=session.session_id, url=session.url)


class PortalSessionRequest(BaseModel):
    return_url: str = Field(alias="returnUrl", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class PortalSessionResponse(BaseModel):
    url: str

    @classmethod
    def from_portal(cls, session: PortalSession) -> "PortalSessionResponse":
        return cls(url=session.url)


class PriceListResponse(BaseModel):
    prices: Dict[str, Dict[str, Optional[str]]]


class WebhookAck(BaseModel):
    received: bool = True
