"""FastAPI dependencies wrapping the entitlement gate.

Protected routes declare these in their signature, e.g.::

    @router.post("/receipts/scan")
    def scan_receipt(scan=Depends(track_receipt_scan)):
        ...
"""
from __future__ import annotations

from typing import Callable, Optional, TypeVar

from fastapi import Depends

from ...app_context import get_optional_user_id
from ..entitlements.meter import UsageCheck
from ..entitlements.models import Tier
from ..services.entitlements import get_entitlement_gate
from .context import TierContext
from .exceptions import FeatureGateError
from .gate import EntitlementGate

_T = TypeVar("_T")


def _guard(check: Callable[[EntitlementGate], _T]) -> _T:
    try:
        return check(get_entitlement_gate())
    except FeatureGateError as exc:
        raise exc.to_http_exception() from exc


def require_tier(minimum: Tier) -> Callable[..., TierContext]:
    """Build a dependency admitting callers at or above ``minimum``."""

    def dependency(user_id: Optional[str] = Depends(get_optional_user_id)) -> TierContext:
        return _guard(lambda gate: gate.require_tier(user_id, minimum))

    dependency.__name__ = f"require_{minimum.value}_tier"
    return dependency


def check_item_limit(user_id: Optional[str] = Depends(get_optional_user_id)) -> UsageCheck:
    return _guard(lambda gate: gate.check_item_limit(user_id))


def track_receipt_scan(
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> Optional[UsageCheck]:
    return _guard(lambda gate: gate.track_receipt_scan(user_id))


def check_ai_quota(user_id: Optional[str] = Depends(get_optional_user_id)) -> UsageCheck:
    return _guard(lambda gate: gate.check_ai_quota(user_id))


def check_voice_assistant_access(user_id: Optional[str] = Depends(get_optional_user_id)) -> int:
    return _guard(lambda gate: gate.check_voice_assistant_access(user_id))


__all__ = [
    "check_ai_quota",
    "check_item_limit",
    "check_voice_assistant_access",
    "require_tier",
    "track_receipt_scan",
]
