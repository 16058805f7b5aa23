"""Connection pool for the PostgreSQL entitlement store.

The pool belongs to the running application: the server opens it on
startup and closes it on cleanup. There is no process-wide pool.
"""

import asyncio
import logging

import asyncpg

from startupprice.config.settings import AppConfig

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5.0


async def open_pool(config: AppConfig) -> asyncpg.Pool:
    """
    Open a pool against ``config.db_dsn`` and confirm the database answers.

    Args:
        config: Application config with db_dsn set

    Returns:
        asyncpg.Pool ready for the entitlement store

    Raises:
        RuntimeError: If db_dsn is unset or the database does not answer
        asyncio.TimeoutError: If connecting takes longer than the timeout
    """
    if config.db_dsn is None:
        raise RuntimeError("db_dsn not configured")

    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(
                str(config.db_dsn),
                min_size=config.db_pool_min,
                max_size=config.db_pool_max,
            ),
            timeout=CONNECT_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(
            f"Entitlement database unreachable after {CONNECT_TIMEOUT_SECONDS:.0f}s"
        )

    try:
        async with pool.acquire() as conn:
            if await conn.fetchval("SELECT 1") != 1:
                raise RuntimeError("unexpected reply to SELECT 1")
    except Exception as e:
        await pool.close()
        raise RuntimeError(f"Entitlement database check failed: {e}") from e

    logger.info(
        f"Entitlement database pool open (min={config.db_pool_min}, max={config.db_pool_max})"
    )
    return pool


async def close_pool(pool: asyncpg.Pool) -> None:
    """Close the pool, terminating it if in-flight connections hold it open."""
    try:
        await asyncio.wait_for(pool.close(), timeout=CONNECT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Entitlement pool close timed out; terminating connections")
        pool.terminate()
    logger.info("Entitlement database pool closed")
