from __future__ import annotations

import pytest

from pantrypal.app.billing import (
    BillingConfig,
    MisconfiguredError,
    PriceNotConfiguredError,
    load_billing_config,
)
from pantrypal.app.entitlements import BillingInterval, Tier


def test_load_billing_config_reads_environment() -> None:
    config = load_billing_config(
        {
            "STRIPE_SECRET_KEY": "sk_test_123",
            "STRIPE_WEBHOOK_SECRET": " whsec_abc ",
            "STRIPE_PRO_MONTHLY_PRICE_ID": "price_pm",
            "STRIPE_PRO_YEARLY_PRICE_ID": "",
            "STRIPE_FAMILY_YEARLY_PRICE_ID": "price_fy",
            "STRIPE_WEBHOOK_TOLERANCE_SECONDS": "120",
            "STRIPE_MAX_NETWORK_RETRIES": "4",
        }
    )

    assert config.uses_stripe is True
    assert config.webhook_secret() == "whsec_abc"
    assert config.price_for(Tier.PRO, BillingInterval.MONTH) == "price_pm"
    assert config.price_for(Tier.FAMILY, BillingInterval.YEAR) == "price_fy"
    assert config.webhook_tolerance_seconds == 120
    assert config.max_network_retries == 4
    assert config.price_listing() == {
        "pro": {"monthly": "price_pm", "yearly": None},
        "family": {"monthly": None, "yearly": "price_fy"},
    }


def test_defaults_when_unset() -> None:
    config = load_billing_config({})

    assert config.uses_stripe is False
    assert config.webhook_tolerance_seconds == 300
    assert config.max_network_retries == 2
    with pytest.raises(MisconfiguredError):
        config.webhook_secret()
    with pytest.raises(PriceNotConfiguredError):
        config.price_for(Tier.PRO, BillingInterval.YEAR)


def test_invalid_integer_rejected() -> None:
    with pytest.raises(ValueError):
        load_billing_config({"STRIPE_MAX_NETWORK_RETRIES": "many"})


def test_config_is_immutable() -> None:
    config = BillingConfig()

    with pytest.raises(AttributeError):
        config.stripe_secret_key = "sk_live"  # type: ignore[misc]
