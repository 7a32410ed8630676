"""Entitlement store contract and an in-process implementation."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, Optional, Protocol, Tuple
from uuid import uuid4

from .exceptions import NotFoundError
from .models import SubscriptionUpdate, Tier, UsageCounter, UsageLimits, UserSubscription


class EntitlementStore(Protocol):
    """Persistence operations for subscription rows and monthly usage.

    Every mutation of entitlement state goes through this contract. Counter
    increments must be atomic at the storage layer so that concurrent callers
    never lose updates.
    """

    def get(self, user_id: str) -> Optional[UserSubscription]:
        ...

    def get_or_create(self, user_id: str) -> UserSubscription:
        ...

    def update(self, user_id: str, update: SubscriptionUpdate) -> UserSubscription:
        ...

    def get_usage(self, user_id: str, month: str) -> UsageLimits:
        ...

    def increment_usage(self, user_id: str, month: str, counter: UsageCounter) -> int:
        ...

    def try_increment_usage(
        self,
        user_id: str,
        month: str,
        counter: UsageCounter,
        ceiling: int,
    ) -> Optional[int]:
        """Increment only while the counter is below ``ceiling``.

        Returns the new value, or ``None`` when the ceiling was already reached.
        """


class InMemoryEntitlementStore:
    """Thread-safe store suitable for tests and local development."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = Lock()
        self._subscriptions: Dict[str, UserSubscription] = {}
        self._usage: Dict[Tuple[str, str], UsageLimits] = {}

    def get(self, user_id: str) -> Optional[UserSubscription]:
        with self._lock:
            return self._subscriptions.get(user_id)

    def get_or_create(self, user_id: str) -> UserSubscription:
        with self._lock:
            existing = self._subscriptions.get(user_id)
            if existing is not None:
                return existing
            now = self._clock()
            created = UserSubscription(
                id=str(uuid4()),
                user_id=user_id,
                tier=Tier.FREE,
                created_at=now,
                updated_at=now,
            )
            self._subscriptions[user_id] = created
            return created

    def update(self, user_id: str, update: SubscriptionUpdate) -> UserSubscription:
        with self._lock:
            existing = self._subscriptions.get(user_id)
            if existing is None:
                raise NotFoundError(user_id)
            updated = existing.apply(update, now=self._clock())
            self._subscriptions[user_id] = updated
            return updated

    def get_usage(self, user_id: str, month: str) -> UsageLimits:
        with self._lock:
            return self._usage_row(user_id, month)

    def increment_usage(self, user_id: str, month: str, counter: UsageCounter) -> int:
        with self._lock:
            return self._bump(user_id, month, counter)

    def try_increment_usage(
        self,
        user_id: str,
        month: str,
        counter: UsageCounter,
        ceiling: int,
    ) -> Optional[int]:
        with self._lock:
            row = self._usage_row(user_id, month)
            if row.count(counter) >= ceiling:
                return None
            return self._bump(user_id, month, counter)

    def _usage_row(self, user_id: str, month: str) -> UsageLimits:
        key = (user_id, month)
        row = self._usage.get(key)
        if row is None:
            now = self._clock()
            row = UsageLimits(
                id=str(uuid4()),
                user_id=user_id,
                month=month,
                created_at=now,
                updated_at=now,
            )
            self._usage[key] = row
        return row

    def _bump(self, user_id: str, month: str, counter: UsageCounter) -> int:
        row = self._usage_row(user_id, month)
        value = row.count(counter) + 1
        self._usage[(user_id, month)] = row.model_copy(
            update={counter.value: value, "updated_at": self._clock()}
        )
        return value


__all__ = ["EntitlementStore", "InMemoryEntitlementStore"]
