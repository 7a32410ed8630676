"""Create entitlement tables and backfill free-tier rows.

Run with ``python -m pantrypal.migrate``.
"""
from pantrypal import app_context
from pantrypal.app.entitlements import migrate_existing_users_to_free_tier
from pantrypal.app.entitlements.repository import (
    PostgresEntitlementStore,
    PostgresInventoryRepository,
    initialize_schema,
)
from pantrypal.main import get_conn


def main():
    app_context.configure(get_conn=get_conn, resolve_user_id=lambda request: None)

    initialize_schema()
    owners = PostgresInventoryRepository().list_owner_ids()
    migrated, skipped = migrate_existing_users_to_free_tier(PostgresEntitlementStore(), owners)
    print(f"Done. {migrated} users migrated to the free tier, {skipped} already had a subscription.")


if __name__ == "__main__":
    main()
