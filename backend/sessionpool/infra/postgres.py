"""asyncpg pool lifecycle shared by the Postgres repositories."""

from __future__ import annotations

from typing import Optional

import asyncpg

from sessionpool.settings import settings

_pool: Optional[asyncpg.Pool] = None


async def init_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            dsn=settings.postgres_url,
            min_size=settings.postgres_min_pool_size,
            max_size=settings.postgres_max_pool_size,
        )
    return _pool


async def get_pool() -> asyncpg.Pool:
    return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
    global _pool
    pool, _pool = _pool, None
    if pool is not None:
        await pool.close()


def affected_rows(status: str) -> int:
    """Row count from an asyncpg command tag such as ``UPDATE 3``."""
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0
