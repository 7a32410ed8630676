"""Application wiring for entitlement storage, metering and gating."""
from __future__ import annotations

from functools import lru_cache

from ..entitlements import EntitlementStore, UsageMeter
from ..entitlements.repository import PostgresEntitlementStore, PostgresInventoryRepository
from ..feature_gates.gate import EntitlementGate, InventoryCounter


@lru_cache(maxsize=1)
def get_entitlement_store() -> EntitlementStore:
    return PostgresEntitlementStore()


@lru_cache(maxsize=1)
def get_inventory() -> InventoryCounter:
    return PostgresInventoryRepository()


@lru_cache(maxsize=1)
def get_usage_meter() -> UsageMeter:
    return UsageMeter(get_entitlement_store())


@lru_cache(maxsize=1)
def get_entitlement_gate() -> EntitlementGate:
    return EntitlementGate(get_usage_meter(), get_inventory())


__all__ = [
    "get_entitlement_gate",
    "get_entitlement_store",
    "get_inventory",
    "get_usage_meter",
]
