"""Request-time entitlement guards composed in front of protected actions."""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..entitlements.catalog import meets_tier
from ..entitlements.exceptions import EntitlementError
from ..entitlements.meter import UsageCheck, UsageMeter
from ..entitlements.models import Tier, UsageCounter
from .context import TierContext
from .exceptions import (
    AiLimitReachedError,
    ItemLimitReachedError,
    ScanLimitReachedError,
    UnauthenticatedError,
    UpgradeRequiredError,
    VoiceAssistantProRequiredError,
)


logger = logging.getLogger(__name__)


class InventoryCounter(Protocol):
    """Source of a user's current inventory size."""

    def count_items(self, user_id: str) -> int:
        ...


class EntitlementGate:
    """Guards composed in front of protected actions.

    Each guard either returns the facts downstream handlers need or raises a
    :class:`FeatureGateError` carrying a machine-readable reason code.
    """

    def __init__(self, meter: UsageMeter, inventory: InventoryCounter) -> None:
        self._meter = meter
        self._inventory = inventory

    def require_tier(self, user_id: Optional[str], minimum: Tier) -> TierContext:
        if not user_id:
            raise UnauthenticatedError()
        subscription, limits = self._meter.resolve(user_id)
        if not meets_tier(subscription.tier, minimum):
            raise UpgradeRequiredError(subscription.tier, minimum)
        return TierContext(user_id=user_id, tier=subscription.tier, limits=limits)

    def check_item_limit(self, user_id: Optional[str]) -> UsageCheck:
        if not user_id:
            raise UnauthenticatedError()
        current = self._inventory.count_items(user_id)
        check = self._meter.can_add_items(user_id, current)
        if not check.allowed:
            raise ItemLimitReachedError(current, check.limit.ceiling or 0)
        return check

    def track_receipt_scan(self, user_id: Optional[str]) -> Optional[UsageCheck]:
        """Meter a receipt scan; anonymous scans pass through unmetered."""

        if not user_id:
            return None
        check = self._meter.consume(user_id, UsageCounter.RECEIPT_SCANS)
        if not check.allowed:
            raise ScanLimitReachedError(check.used, check.limit.ceiling or 0)
        return check

    def check_ai_quota(self, user_id: Optional[str]) -> UsageCheck:
        if not user_id:
            raise UnauthenticatedError()
        check = self._meter.consume(user_id, UsageCounter.AI_CALLS)
        if not check.allowed:
            raise AiLimitReachedError(check.used, check.limit.ceiling or 0)
        return check

    def check_voice_assistant_access(self, user_id: Optional[str]) -> int:
        """Admit a voice session and return the month's session count."""

        if not user_id:
            raise UnauthenticatedError()
        subscription, limits = self._meter.resolve(user_id)
        if not limits.voice_assistant:
            raise VoiceAssistantProRequiredError(subscription.tier)
        return self._meter.record(user_id, UsageCounter.VOICE_SESSIONS)

    def track_voice_session(self, user_id: str) -> Optional[int]:
        """Record a completed voice session. Store failures are only logged."""

        try:
            return self._meter.record(user_id, UsageCounter.VOICE_SESSIONS)
        except EntitlementError:
            logger.exception("Failed to track voice session for user %s", user_id)
            return None


__all__ = ["EntitlementGate", "InventoryCounter"]
