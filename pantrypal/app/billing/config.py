"""Billing configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from ..entitlements.models import BillingInterval, Tier
from .exceptions import MisconfiguredError, PriceNotConfiguredError


PriceKey = Tuple[Tier, BillingInterval]

_PRICE_ENV_VARS: Dict[PriceKey, str] = {
    (Tier.PRO, BillingInterval.MONTH): "STRIPE_PRO_MONTHLY_PRICE_ID",
    (Tier.PRO, BillingInterval.YEAR): "STRIPE_PRO_YEARLY_PRICE_ID",
    (Tier.FAMILY, BillingInterval.MONTH): "STRIPE_FAMILY_MONTHLY_PRICE_ID",
    (Tier.FAMILY, BillingInterval.YEAR): "STRIPE_FAMILY_YEARLY_PRICE_ID",
}


@dataclass(frozen=True)
class BillingConfig:
    """Immutable billing settings resolved once at process start."""

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    price_ids: Mapping[PriceKey, str] = field(default_factory=dict)
    webhook_tolerance_seconds: int = 300
    max_network_retries: int = 2

    @property
    def uses_stripe(self) -> bool:
        return bool(self.stripe_secret_key)

    def price_for(self, tier: Tier, interval: BillingInterval) -> str:
        """Return the provider price id for a paid tier and interval."""

        price_id = self.price_ids.get((tier, interval))
        if not price_id:
            raise PriceNotConfiguredError(f"Price not configured for {tier.value}/{interval.value}")
        return price_id

    def webhook_secret(self) -> str:
        if not self.stripe_webhook_secret:
            raise MisconfiguredError("STRIPE_WEBHOOK_SECRET is not configured")
        return self.stripe_webhook_secret

    def price_listing(self) -> Dict[str, Dict[str, Optional[str]]]:
        """Configured price ids grouped by tier, keyed ``monthly``/``yearly``."""

        listing: Dict[str, Dict[str, Optional[str]]] = {}
        for tier in (Tier.PRO, Tier.FAMILY):
            listing[tier.value] = {
                "monthly": self.price_ids.get((tier, BillingInterval.MONTH)),
                "yearly": self.price_ids.get((tier, BillingInterval.YEAR)),
            }
        return listing


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    price_ids: Dict[PriceKey, str] = {}
    for key, variable in _PRICE_ENV_VARS.items():
        value = (env_mapping.get(variable) or "").strip()
        if value:
            price_ids[key] = value

    return BillingConfig(
        stripe_secret_key=(env_mapping.get("STRIPE_SECRET_KEY") or "").strip() or None,
        stripe_webhook_secret=(env_mapping.get("STRIPE_WEBHOOK_SECRET") or "").strip() or None,
        price_ids=price_ids,
        webhook_tolerance_seconds=max(
            0, _to_int(env_mapping.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS"), default=300)
        ),
        max_network_retries=max(
            0, _to_int(env_mapping.get("STRIPE_MAX_NETWORK_RETRIES"), default=2)
        ),
    )


__all__ = ["BillingConfig", "load_billing_config"]
