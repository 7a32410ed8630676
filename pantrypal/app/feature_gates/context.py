"""Resolved tier handed to routes guarded by a tier floor."""
from __future__ import annotations

from dataclasses import dataclass

from ..entitlements.models import Tier, TierLimits


@dataclass(frozen=True)
class TierContext:
    user_id: str
    tier: Tier
    limits: TierLimits
