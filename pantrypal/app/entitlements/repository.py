"""PostgreSQL persistence for subscription rows and monthly usage."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional
from uuid import uuid4

import psycopg2
import psycopg2.extras
from psycopg2 import sql
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .exceptions import EntitlementStoreError, NotFoundError
from .models import (
    SubscriptionStatus,
    SubscriptionUpdate,
    Tier,
    UsageCounter,
    UsageLimits,
    UserSubscription,
)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_subscriptions (
    id TEXT PRIMARY KEY,
    user_id TEXT UNIQUE NOT NULL,
    tier TEXT NOT NULL DEFAULT 'free' CHECK (tier IN ('free', 'pro', 'family')),
    stripe_customer_id TEXT,
    stripe_subscription_id TEXT,
    stripe_price_id TEXT,
    subscription_status TEXT CHECK (subscription_status IN (
        'active', 'canceled', 'incomplete', 'incomplete_expired',
        'past_due', 'trialing', 'unpaid'
    )),
    subscription_start_date TIMESTAMPTZ,
    subscription_end_date TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (stripe_subscription_id IS NOT NULL OR tier = 'free')
);

CREATE TABLE IF NOT EXISTS usage_limits (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    month CHAR(7) NOT NULL,
    receipt_scans INTEGER NOT NULL DEFAULT 0 CHECK (receipt_scans >= 0),
    ai_calls INTEGER NOT NULL DEFAULT 0 CHECK (ai_calls >= 0),
    voice_sessions INTEGER NOT NULL DEFAULT 0 CHECK (voice_sessions >= 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, month)
);

CREATE INDEX IF NOT EXISTS idx_user_subscriptions_customer
    ON user_subscriptions (stripe_customer_id);
CREATE INDEX IF NOT EXISTS idx_usage_limits_user_id ON usage_limits (user_id);
"""


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def initialize_schema(conn: Optional[PgConnection] = None) -> None:
    """Create the entitlement tables when they do not exist yet."""

    with managed_connection(conn) as (connection, _managed):
        with connection.cursor() as cursor:
            cursor.execute(SCHEMA_SQL)


def _row_to_subscription(row: dict) -> UserSubscription:
    status = row.get("subscription_status")
    return UserSubscription(
        id=row["id"],
        user_id=row["user_id"],
        tier=Tier(row["tier"]),
        stripe_customer_id=row.get("stripe_customer_id"),
        stripe_subscription_id=row.get("stripe_subscription_id"),
        stripe_price_id=row.get("stripe_price_id"),
        subscription_status=SubscriptionStatus(status) if status else None,
        subscription_start_date=row.get("subscription_start_date"),
        subscription_end_date=row.get("subscription_end_date"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_usage(row: dict) -> UsageLimits:
    return UsageLimits(
        id=row["id"],
        user_id=row["user_id"],
        month=row["month"],
        receipt_scans=int(row["receipt_scans"]),
        ai_calls=int(row["ai_calls"]),
        voice_sessions=int(row["voice_sessions"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresEntitlementStore:
    """Entitlement store backed by PostgreSQL.

    Row creation relies on ``ON CONFLICT DO NOTHING`` against the unique user
    (and user/month) keys, so concurrent first access converges on one row.
    Counter increments are single ``UPDATE ... SET c = c + 1`` statements.
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, _managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                finally:
                    cursor.close()
        except psycopg2.Error as exc:
            raise EntitlementStoreError(str(exc)) from exc

    def get(self, user_id: str) -> Optional[UserSubscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM user_subscriptions
                WHERE user_id = %s
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get_or_create(self, user_id: str) -> UserSubscription:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO user_subscriptions (id, user_id, tier)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id) DO NOTHING
                RETURNING *
                """,
                (str(uuid4()), user_id, Tier.FREE.value),
            )
            row = cursor.fetchone()
            if row is None:
                # Another request inserted the row first; read theirs.
                cursor.execute(
                    "SELECT * FROM user_subscriptions WHERE user_id = %s",
                    (user_id,),
                )
                row = cursor.fetchone()
            if not row:
                raise EntitlementStoreError(f"Failed to persist subscription for user {user_id}")
            return _row_to_subscription(row)

    def update(self, user_id: str, update: SubscriptionUpdate) -> UserSubscription:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM user_subscriptions
                WHERE user_id = %s
                FOR UPDATE
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            if not row:
                raise NotFoundError(user_id)

            current = _row_to_subscription(row)
            merged = current.apply(update, now=current.updated_at)
            cursor.execute(
                """
                UPDATE user_subscriptions
                SET tier = %(tier)s,
                    stripe_customer_id = %(stripe_customer_id)s,
                    stripe_subscription_id = %(stripe_subscription_id)s,
                    stripe_price_id = %(stripe_price_id)s,
                    subscription_status = %(subscription_status)s,
                    subscription_start_date = %(subscription_start_date)s,
                    subscription_end_date = %(subscription_end_date)s,
                    updated_at = NOW()
                WHERE user_id = %(user_id)s
                RETURNING *
                """,
                {
                    "user_id": user_id,
                    "tier": merged.tier.value,
                    "stripe_customer_id": merged.stripe_customer_id,
                    "stripe_subscription_id": merged.stripe_subscription_id,
                    "stripe_price_id": merged.stripe_price_id,
                    "subscription_status": (
                        merged.subscription_status.value if merged.subscription_status else None
                    ),
                    "subscription_start_date": merged.subscription_start_date,
                    "subscription_end_date": merged.subscription_end_date,
                },
            )
            updated = cursor.fetchone()
            if not updated:
                raise NotFoundError(user_id)
            return _row_to_subscription(updated)

    def get_usage(self, user_id: str, month: str) -> UsageLimits:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO usage_limits (id, user_id, month)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id, month) DO NOTHING
                RETURNING *
                """,
                (str(uuid4()), user_id, month),
            )
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "SELECT * FROM usage_limits WHERE user_id = %s AND month = %s",
                    (user_id, month),
                )
                row = cursor.fetchone()
            if not row:
                raise EntitlementStoreError(f"Failed to persist usage for user {user_id} {month}")
            return _row_to_usage(row)

    def increment_usage(self, user_id: str, month: str, counter: UsageCounter) -> int:
        statement = sql.SQL(
            """
            INSERT INTO usage_limits (id, user_id, month, {column})
            VALUES (%s, %s, %s, 1)
            ON CONFLICT (user_id, month) DO UPDATE
            SET {column} = usage_limits.{column} + 1,
                updated_at = NOW()
            RETURNING {column} AS value
            """
        ).format(column=sql.Identifier(counter.value))
        with self._cursor() as cursor:
            cursor.execute(statement, (str(uuid4()), user_id, month))
            row = cursor.fetchone()
            if not row:
                raise EntitlementStoreError(f"Failed to increment {counter.value} for user {user_id}")
            return int(row["value"])

    def try_increment_usage(
        self,
        user_id: str,
        month: str,
        counter: UsageCounter,
        ceiling: int,
    ) -> Optional[int]:
        statement = sql.SQL(
            """
            UPDATE usage_limits
            SET {column} = {column} + 1,
                updated_at = NOW()
            WHERE user_id = %s AND month = %s AND {column} < %s
            RETURNING {column} AS value
            """
        ).format(column=sql.Identifier(counter.value))
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO usage_limits (id, user_id, month)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id, month) DO NOTHING
                """,
                (str(uuid4()), user_id, month),
            )
            cursor.execute(statement, (user_id, month, ceiling))
            row = cursor.fetchone()
            return int(row["value"]) if row else None


class PostgresInventoryRepository:
    """Read-only view of the inventory table used for item ceilings."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def count_items(self, user_id: str) -> int:
        with managed_connection(self._conn) as (connection, _managed):
            with connection.cursor() as cursor:
                cursor.execute(
                    "SELECT COUNT(*) FROM pantry_items WHERE user_id = %s",
                    (user_id,),
                )
                row = cursor.fetchone()
                return int(row[0]) if row else 0

    def list_owner_ids(self) -> List[str]:
        with managed_connection(self._conn) as (connection, _managed):
            with connection.cursor() as cursor:
                cursor.execute("SELECT DISTINCT user_id FROM pantry_items")
                return [str(row[0]) for row in cursor.fetchall() or []]


__all__ = [
    "PostgresEntitlementStore",
    "PostgresInventoryRepository",
    "initialize_schema",
    "managed_connection",
]
