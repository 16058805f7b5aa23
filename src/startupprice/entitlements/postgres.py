"""PostgreSQL-backed entitlement store."""

import logging

import asyncpg

from startupprice.db.models import Table
from startupprice.entitlements.base import EntitlementStore, UserEntitlement

logger = logging.getLogger(__name__)


class PostgresEntitlementStore(EntitlementStore):
    """
    Durable entitlement store over an asyncpg pool.

    Each upsert is a single ``INSERT ... ON CONFLICT`` statement, so a
    record write is atomic and concurrent deliveries for the same user
    converge on the same row.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def upsert_premium(self, user_id: str, email: str) -> UserEntitlement:
        async with self._pool.acquire() as conn:
            await conn.execute(
                f"""
                INSERT INTO {Table.USER_ENTITLEMENTS} (user_id, email, is_premium)
                VALUES ($1, $2, TRUE)
                ON CONFLICT (user_id) DO UPDATE SET
                    email = EXCLUDED.email,
                    is_premium = TRUE,
                    updated_at = now()
                """,
                user_id,
                email,
            )

        logger.info(f"User marked premium: user_id={user_id}")
        return UserEntitlement(user_id=user_id, email=email, is_premium=True)

    async def get(self, user_id: str) -> UserEntitlement | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT user_id, email, is_premium
                FROM {Table.USER_ENTITLEMENTS}
                WHERE user_id = $1
                """,
                user_id,
            )

        if row is None:
            return None
        return UserEntitlement(
            user_id=row["user_id"],
            email=row["email"],
            is_premium=row["is_premium"],
        )

    async def delete(self, user_id: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                f"DELETE FROM {Table.USER_ENTITLEMENTS} WHERE user_id = $1",
                user_id,
            )

    async def clear(self) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(f"DELETE FROM {Table.USER_ENTITLEMENTS}")
