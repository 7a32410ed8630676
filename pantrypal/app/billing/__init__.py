"""Billing domain package: provider gateway, checkout flows and webhook reconciliation."""

from .config import BillingConfig, load_billing_config
from .exceptions import (
    BillingError,
    InvalidSignatureError,
    MisconfiguredError,
    NoBillingCustomerError,
    PriceNotConfiguredError,
    UpstreamRequestError,
    UpstreamUnavailableError,
)
from .gateway import BillingGateway, StripeBillingGateway
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    CheckoutSession,
    PortalSession,
    SubscriptionObject,
    WebhookEvent,
    WebhookEventType,
)
from .reconciler import RETRYABLE_ERRORS, WebhookOutcome, WebhookReconciler, WebhookResult
from .service import BillingEventLogger, BillingService
from .webhooks import construct_event

__all__ = [
    "RETRYABLE_ERRORS",
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingConfig",
    "BillingError",
    "BillingEventLogger",
    "BillingGateway",
    "BillingService",
    "CheckoutSession",
    "InvalidSignatureError",
    "MisconfiguredError",
    "NoBillingCustomerError",
    "PortalSession",
    "PriceNotConfiguredError",
    "StripeBillingGateway",
    "SubscriptionObject",
    "UpstreamRequestError",
    "UpstreamUnavailableError",
    "WebhookEvent",
    "WebhookEventType",
    "WebhookOutcome",
    "WebhookReconciler",
    "WebhookResult",
    "construct_event",
    "load_billing_config",
]
