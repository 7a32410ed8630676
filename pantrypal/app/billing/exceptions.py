"""Errors raised by billing flows and webhook reconciliation."""
from __future__ import annotations


class BillingError(Exception):
    """Base class for billing failures."""


class InvalidSignatureError(BillingError):
    """Webhook payload failed authenticity verification."""


class UpstreamUnavailableError(BillingError):
    """The billing provider could not be reached or timed out.

    Retryable: webhook handlers surface it so the provider redelivers.
    """


class UpstreamRequestError(BillingError):
    """The billing provider rejected a request (unknown object, bad params)."""


class MisconfiguredError(BillingError):
    """A required secret or price identifier is not configured."""


class NoBillingCustomerError(BillingError):
    """The user has never started a checkout, so no provider customer exists."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No billing customer found for user {user_id}")
        self.user_id = user_id


class PriceNotConfiguredError(MisconfiguredError):
    """No provider price is configured for the requested tier and interval."""
