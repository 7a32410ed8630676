"""Backfill of free-tier rows for users that predate subscriptions."""
from __future__ import annotations

import logging
from typing import Iterable, Tuple

from .store import EntitlementStore


logger = logging.getLogger(__name__)


def migrate_existing_users_to_free_tier(
    store: EntitlementStore,
    user_ids: Iterable[str],
) -> Tuple[int, int]:
    """Ensure every known user has a subscription row.

    Returns ``(migrated, skipped)`` where ``skipped`` counts users that already
    had a row. Safe to run repeatedly.
    """

    migrated = 0
    skipped = 0
    for user_id in dict.fromkeys(user_ids):
        if store.get(user_id) is not None:
            skipped += 1
            continue
        store.get_or_create(user_id)
        migrated += 1

    logger.info("User subscriptions backfill: %s migrated, %s skipped", migrated, skipped)
    return migrated, skipped
