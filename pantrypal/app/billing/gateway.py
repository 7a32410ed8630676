"""Billing provider integration."""
from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

import stripe
from pydantic import ValidationError

from ..entitlements.models import Tier
from .config import BillingConfig
from .exceptions import (
    BillingError,
    MisconfiguredError,
    UpstreamRequestError,
    UpstreamUnavailableError,
)
from .models import CheckoutSession, PortalSession, SubscriptionObject


logger = logging.getLogger("billing")


class BillingGateway(Protocol):
    """External payment processor operations used by billing flows."""

    def create_customer(self, *, user_id: str) -> str:
        """Create a provider customer for the user and return its id."""

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        user_id: str,
        tier: Tier,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """Create a subscription checkout session."""

    def create_portal_session(self, *, customer_id: str, return_url: str) -> PortalSession:
        """Create a provider-hosted billing portal session."""

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        """Fetch the full subscription from the provider."""


def _plain(value: Any) -> Any:
    """Convert provider objects into plain dicts and lists."""

    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    keys = getattr(value, "keys", None)
    if callable(keys):
        return {str(key): _plain(value[key]) for key in keys()}
    return value


def _translate(exc: stripe.StripeError, action: str) -> BillingError:
    if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)):
        return UpstreamUnavailableError(f"Stripe unavailable while trying to {action}: {exc}")
    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        return MisconfiguredError(f"Stripe rejected credentials while trying to {action}: {exc}")
    if isinstance(exc, stripe.InvalidRequestError):
        return UpstreamRequestError(f"Stripe rejected request to {action}: {exc}")
    return UpstreamUnavailableError(f"Stripe error while trying to {action}: {exc}")


class StripeBillingGateway:
    """:class:`BillingGateway` backed by the Stripe API."""

    def __init__(self, config: BillingConfig) -> None:
        if not config.stripe_secret_key:
            raise MisconfiguredError("STRIPE_SECRET_KEY is not configured")
        self._api_key = config.stripe_secret_key
        stripe.max_network_retries = config.max_network_retries

    def create_customer(self, *, user_id: str) -> str:
        try:
            customer = stripe.Customer.create(
                api_key=self._api_key,
                metadata={"userId": user_id},
                idempotency_key=f"customer-{user_id}",
            )
        except stripe.StripeError as exc:
            raise _translate(exc, "create customer") from exc
        return str(customer["id"])

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        user_id: str,
        tier: Tier,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        metadata = {"userId": user_id, "tier": tier.value}
        try:
            session = stripe.checkout.Session.create(
                api_key=self._api_key,
                customer=customer_id,
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                subscription_data={"metadata": metadata},
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as exc:
            raise _translate(exc, "create checkout session") from exc

        url = session["url"]
        if not url:
            raise UpstreamRequestError("Checkout session created without URL")
        return CheckoutSession(session_id=str(session["id"]), url=str(url))

    def create_portal_session(self, *, customer_id: str, return_url: str) -> PortalSession:
        try:
            session = stripe.billing_portal.Session.create(
                api_key=self._api_key,
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as exc:
            raise _translate(exc, "create portal session") from exc
        return PortalSession(url=str(session["url"]))

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._api_key)
        except stripe.StripeError as exc:
            raise _translate(exc, f"retrieve subscription {subscription_id}") from exc

        try:
            return SubscriptionObject.model_validate(_plain(subscription))
        except ValidationError as exc:
            raise UpstreamRequestError(f"Unexpected subscription payload for {subscription_id}") from exc


__all__ = ["BillingGateway", "StripeBillingGateway"]
