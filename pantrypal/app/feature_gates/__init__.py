"""Feature gating utilities coordinating entitlement enforcement."""
from .context import TierContext
from .exceptions import (
    AiLimitReachedError,
    FeatureGateError,
    ItemLimitReachedError,
    ScanLimitReachedError,
    UnauthenticatedError,
    UpgradeRequiredError,
    VoiceAssistantProRequiredError,
)
from .gate import EntitlementGate, InventoryCounter

__all__ = [
    "AiLimitReachedError",
    "EntitlementGate",
    "FeatureGateError",
    "InventoryCounter",
    "ItemLimitReachedError",
    "ScanLimitReachedError",
    "TierContext",
    "UnauthenticatedError",
    "UpgradeRequiredError",
    "VoiceAssistantProRequiredError",
]
