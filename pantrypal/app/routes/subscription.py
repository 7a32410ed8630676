"""Read-only API routes reporting a caller's tier, limits and usage."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ...app_context import get_user_id
from ..schemas.subscription import (
    FeatureCheckResponse,
    ItemLimitCheckResponse,
    QuotaCheckResponse,
    SubscriptionStatusResponse,
    TierInfoResponse,
)
from ..services.entitlements import get_inventory, get_usage_meter


router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/tier", response_model=TierInfoResponse)
def get_tier_info(*, user_id: str = Depends(get_user_id)) -> TierInfoResponse:
    meter = get_usage_meter()
    current_items = get_inventory().count_items(user_id)
    return TierInfoResponse.from_tier_info(meter.tier_info(user_id, current_items))


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(*, user_id: str = Depends(get_user_id)) -> SubscriptionStatusResponse:
    return SubscriptionStatusResponse.from_summary(get_usage_meter().summary(user_id))


@router.get("/check-items", response_model=ItemLimitCheckResponse)
def check_items(*, user_id: str = Depends(get_user_id)) -> ItemLimitCheckResponse:
    current_items = get_inventory().count_items(user_id)
    check = get_usage_meter().can_add_items(user_id, current_items)
    return ItemLimitCheckResponse.from_check(check)


@router.get("/check-receipt", response_model=QuotaCheckResponse)
def check_receipt(*, user_id: str = Depends(get_user_id)) -> QuotaCheckResponse:
    return QuotaCheckResponse.from_check(get_usage_meter().can_scan_receipt(user_id))


@router.get("/check-ai", response_model=QuotaCheckResponse)
def check_ai(*, user_id: str = Depends(get_user_id)) -> QuotaCheckResponse:
    return QuotaCheckResponse.from_check(get_usage_meter().can_use_ai(user_id))


@router.get("/check-voice", response_model=FeatureCheckResponse)
def check_voice(*, user_id: str = Depends(get_user_id)) -> FeatureCheckResponse:
    return FeatureCheckResponse(allowed=get_usage_meter().can_use_voice_assistant(user_id))
