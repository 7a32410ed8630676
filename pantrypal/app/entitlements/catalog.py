"""Static tier catalog."""
from __future__ import annotations

from typing import Dict

from .models import UNLIMITED, Limit, Tier, TierLimits


FREE_LIMITS = TierLimits(
    max_items=Limit.finite(50),
    receipt_scans_per_month=Limit.finite(5),
    ai_calls_per_month=Limit.finite(0),
    voice_assistant=False,
    multi_device=False,
    shared_inventory=False,
    max_family_members=1,
)

PRO_LIMITS = TierLimits(
    max_items=UNLIMITED,
    receipt_scans_per_month=UNLIMITED,
    ai_calls_per_month=UNLIMITED,
    voice_assistant=True,
    multi_device=True,
    shared_inventory=False,
    max_family_members=1,
)

FAMILY_LIMITS = TierLimits(
    max_items=UNLIMITED,
    receipt_scans_per_month=UNLIMITED,
    ai_calls_per_month=UNLIMITED,
    voice_assistant=True,
    multi_device=True,
    shared_inventory=True,
    max_family_members=5,
)

TIER_CATALOG: Dict[Tier, TierLimits] = {
    Tier.FREE: FREE_LIMITS,
    Tier.PRO: PRO_LIMITS,
    Tier.FAMILY: FAMILY_LIMITS,
}

TIER_RANK: Dict[Tier, int] = {
    Tier.FREE: 0,
    Tier.PRO: 1,
    Tier.FAMILY: 2,
}


def get_tier_limits(tier: Tier) -> TierLimits:
    """Return the limits for a tier, raising if unsupported."""

    try:
        return TIER_CATALOG[tier]
    except KeyError as exc:  # pragma: no cover - guarded by static catalog
        raise KeyError(f"Unknown tier: {tier}") from exc


def meets_tier(current: Tier, minimum: Tier) -> bool:
    """Return whether ``current`` ranks at or above ``minimum``."""

    return TIER_RANK[current] >= TIER_RANK[minimum]
