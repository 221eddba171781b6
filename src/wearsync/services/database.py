"""Postgres access for the wearable stores.

Uses ``asyncpg`` directly against the Supabase database: the service runs
with the service-role connection string, so callers scope every query by
``client_id`` themselves.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Iterable, Sequence

import asyncpg

from wearsync.config import Settings, get_settings

logger = logging.getLogger("wearsync.db")

# Module-level connection pool, initialized once at app startup
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    global _pool
    s = settings or get_settings()
    _pool = await asyncpg.create_pool(
        s.supabase_db_url,
        min_size=1,
        max_size=10,
        command_timeout=30,
    )
    logger.info("Database pool initialized (min=1, max=10)")
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


def pool_ready() -> bool:
    return _pool is not None


@asynccontextmanager
async def get_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a pooled connection inside a transaction.

    Usage::

        async with get_connection() as conn:
            rows = await conn.fetch("SELECT * FROM wearable_connections WHERE client_id = $1", cid)
    """
    pool = get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn


async def execute(query: str, *args: Any) -> str:
    """Execute a single statement and return status."""
    async with get_connection() as conn:
        return await conn.execute(query, *args)


async def executemany(query: str, rows: Iterable[Sequence[Any]]) -> None:
    """Run one statement per argument tuple in a single transaction."""
    async with get_connection() as conn:
        await conn.executemany(query, rows)


async def fetch(query: str, *args: Any) -> list[asyncpg.Record]:
    async with get_connection() as conn:
        return await conn.fetch(query, *args)


async def fetchrow(query: str, *args: Any) -> asyncpg.Record | None:
    async with get_connection() as conn:
        return await conn.fetchrow(query, *args)


async def fetchval(query: str, *args: Any) -> Any:
    async with get_connection() as conn:
        return await conn.fetchval(query, *args)
