"""Custom exceptions used for feature gating enforcement."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status

from ..entitlements.models import Tier

UPGRADE_URL = "/pricing"


@dataclass
class FeatureGateError(Exception):
    """Represents an actionable gating failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_403_FORBIDDEN
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class UnauthenticatedError(FeatureGateError):
    def __init__(self) -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message="Authentication required",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class UpgradeRequiredError(FeatureGateError):
    """The caller's tier ranks below the tier the feature requires."""

    def __init__(self, current_tier: Tier, required_tier: Tier) -> None:
        super().__init__(
            code="UPGRADE_REQUIRED",
            message=f"This feature requires {required_tier.value} tier or higher",
            detail={
                "currentTier": current_tier.value,
                "requiredTier": required_tier.value,
                "upgradeUrl": UPGRADE_URL,
            },
        )
        self.current_tier = current_tier
        self.required_tier = required_tier


class ItemLimitReachedError(FeatureGateError):
    def __init__(self, current: int, maximum: int) -> None:
        super().__init__(
            code="ITEM_LIMIT_REACHED",
            message=f"You've reached your plan's limit of {maximum} items",
            detail={
                "currentItems": current,
                "maxItems": maximum,
                "upgradeUrl": UPGRADE_URL,
                "upgradeMessage": "Upgrade to Pro for unlimited items",
            },
        )
        self.current = current
        self.maximum = maximum


class ScanLimitReachedError(FeatureGateError):
    def __init__(self, used: int, limit: int) -> None:
        super().__init__(
            code="RECEIPT_SCAN_LIMIT_REACHED",
            message="You've reached your monthly receipt scan limit",
            detail={
                "used": used,
                "limit": limit,
                "remaining": 0,
                "upgradeUrl": UPGRADE_URL,
                "upgradeMessage": "Upgrade to Pro for unlimited receipt scans",
            },
        )
        self.used = used
        self.limit = limit


class AiLimitReachedError(FeatureGateError):
    def __init__(self, used: int, limit: int) -> None:
        super().__init__(
            code="AI_LIMIT_REACHED",
            message="You've reached your monthly AI assistant limit",
            detail={
                "used": used,
                "limit": limit,
                "remaining": 0,
                "upgradeUrl": UPGRADE_URL,
                "upgradeMessage": "Upgrade to Pro for unlimited AI features",
            },
        )
        self.used = used
        self.limit = limit


class VoiceAssistantProRequiredError(FeatureGateError):
    def __init__(self, current_tier: Tier) -> None:
        super().__init__(
            code="VOICE_ASSISTANT_PRO_REQUIRED",
            message="Voice assistant is a Pro feature",
            detail={
                "currentTier": current_tier.value,
                "upgradeUrl": UPGRADE_URL,
                "upgradeMessage": "Upgrade to Pro for voice assistant access",
            },
        )
        self.current_tier = current_tier


__all__ = [
    "AiLimitReachedError",
    "FeatureGateError",
    "ItemLimitReachedError",
    "ScanLimitReachedError",
    "UnauthenticatedError",
    "UpgradeRequiredError",
    "VoiceAssistantProRequiredError",
]
