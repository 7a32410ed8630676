"""Typed views of billing-provider objects and billing audit events."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..entitlements.models import SubscriptionStatus, Tier


PAID_TIERS = frozenset({Tier.PRO, Tier.FAMILY})

TERMINAL_STATUSES = frozenset(
    {SubscriptionStatus.CANCELED, SubscriptionStatus.INCOMPLETE_EXPIRED}
)


class WebhookEventType(str, Enum):
    """Provider event types that drive entitlement reconciliation."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


def _object_id(value: Any) -> Any:
    # Provider references arrive either as an id string or an expanded object.
    if isinstance(value, dict):
        return value.get("id")
    return value


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class WebhookEventData(BaseModel):
    object_: Dict[str, Any] = Field(alias="object")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class WebhookEvent(BaseModel):
    """Verified webhook envelope."""

    id: str
    type: str
    created: Optional[int] = None
    livemode: bool = False
    data: WebhookEventData

    model_config = ConfigDict(extra="ignore", frozen=True)

    @property
    def payload(self) -> Dict[str, Any]:
        return self.data.object_


class CheckoutMetadata(BaseModel):
    """Metadata attached to checkout sessions created by this service."""

    user_id: str = Field(alias="userId", min_length=1)
    tier: Tier

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator("tier")
    @classmethod
    def _paid_tier(cls, value: Tier) -> Tier:
        if value not in PAID_TIERS:
            raise ValueError("checkout tier must be a paid tier")
        return value


class SubscriptionMetadata(BaseModel):
    """Metadata copied onto provider subscriptions at checkout."""

    user_id: str = Field(alias="userId", min_length=1)
    tier: Optional[Tier] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator("tier", mode="before")
    @classmethod
    def _ignore_unknown_tier(cls, value: Any) -> Any:
        if value in {tier.value for tier in Tier}:
            return value
        return None


def parse_metadata(model: type[BaseModel], raw: Any) -> Optional[Any]:
    """Validate a provider metadata bag, returning ``None`` when malformed."""

    if not isinstance(raw, dict):
        return None
    try:
        return model.model_validate(raw)
    except ValidationError:
        return None


class CheckoutSessionObject(BaseModel):
    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def _reference(cls, value: Any) -> Any:
        return _object_id(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value: Any) -> Any:
        return value or {}


class SubscriptionObject(BaseModel):
    """Provider subscription, as delivered in events or fetched on demand."""

    id: str
    customer: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    items: Dict[str, Any] = Field(default_factory=dict)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("customer", mode="before")
    @classmethod
    def _reference(cls, value: Any) -> Any:
        return _object_id(value)

    @field_validator("metadata", "items", mode="before")
    @classmethod
    def _mapping(cls, value: Any) -> Any:
        return value or {}

    @field_validator("status", mode="before")
    @classmethod
    def _known_status(cls, value: Any) -> Any:
        # Statuses outside the tracked lifecycle (e.g. "paused") are not recorded.
        if value in {status.value for status in SubscriptionStatus}:
            return value
        return None

    @property
    def first_item(self) -> Dict[str, Any]:
        data: List[Any] = self.items.get("data") or []
        first = data[0] if data else None
        return first if isinstance(first, dict) else {}

    @property
    def price_id(self) -> Optional[str]:
        price = self.first_item.get("price")
        return _object_id(price) if price else None

    @property
    def period_start(self) -> Optional[datetime]:
        # Newer API versions report billing periods on the subscription item.
        value = self.current_period_start
        if value is None:
            value = self.first_item.get("current_period_start")
        return _from_timestamp(value)

    @property
    def period_end(self) -> Optional[datetime]:
        value = self.current_period_end
        if value is None:
            value = self.first_item.get("current_period_end")
        return _from_timestamp(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class InvoiceObject(BaseModel):
    id: Optional[str] = None
    customer: Optional[str] = None
    subscription: Optional[str] = None
    parent: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def _reference(cls, value: Any) -> Any:
        return _object_id(value)

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return _object_id(details.get("subscription"))


class CheckoutSession(BaseModel):
    """Return value of a checkout session creation request."""

    session_id: str
    url: str

    model_config = ConfigDict(frozen=True)


class PortalSession(BaseModel):
    url: str

    model_config = ConfigDict(frozen=True)


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DOWNGRADED = "subscription_downgraded"
    PAYMENT_FAILED = "payment_failed"
    CUSTOMER_CREATED = "customer_created"


class BillingAuditEvent(BaseModel):
    """Structured audit event for analytics and notifications."""

    event_type: BillingAuditEventType
    user_id: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)
