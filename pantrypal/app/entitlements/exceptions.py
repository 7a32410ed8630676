"""Errors raised by the entitlement store."""
from __future__ import annotations


class EntitlementError(Exception):
    """Base class for entitlement persistence failures."""


class NotFoundError(EntitlementError, LookupError):
    """Raised when a referenced entitlement row does not exist."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No subscription row for user {user_id}")
        self.user_id = user_id


class EntitlementStoreError(EntitlementError):
    """Raised when the persistence layer cannot complete an operation."""
