"""asyncpg connection pool for the Postgres credential backend.

The pool is only created when ``credential_backend`` is ``postgres``; the
file and memory backends never touch it, and ``/health`` reports the
database as "not configured".
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg

from strainwatch.config import Settings, get_settings

logger = logging.getLogger("strainwatch.db")

# Shared by PostgresCredentialStore and the health probe
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Open the credential database pool; called from the app lifespan."""
    global _pool
    cfg = settings or get_settings()
    if not cfg.database_url:
        raise RuntimeError("DATABASE_URL is required for the postgres credential backend")
    _pool = await asyncpg.create_pool(
        cfg.database_url,
        min_size=cfg.db_pool_min_size,
        max_size=cfg.db_pool_max_size,
        command_timeout=cfg.http_timeout_seconds * 2,
    )
    logger.info(
        "Credential database pool ready (min=%d, max=%d)",
        cfg.db_pool_min_size,
        cfg.db_pool_max_size,
    )
    return _pool


async def close_pool() -> None:
    """Close the pool if one was opened; safe to call for any backend."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Credential database pool closed")


def pool_ready() -> bool:
    return _pool is not None


def get_pool() -> asyncpg.Pool:
    if not pool_ready():
        raise RuntimeError("Credential database pool is not open, call init_pool() first")
    return _pool


@asynccontextmanager
async def get_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """Borrow a pooled connection wrapped in a transaction.

    Every credential upsert or delete runs in its own transaction::

        async with get_connection() as conn:
            await conn.execute("DELETE FROM whoop_credentials WHERE user_id = $1", user_id)
    """
    async with get_pool().acquire() as conn, conn.transaction():
        yield conn
