"""Asyncpg connection pool shared by repositories and workers."""
from __future__ import annotations

import json
from typing import Any, AsyncIterator, Protocol

import asyncpg  # type: ignore[import-untyped]

pool: asyncpg.Pool | None = None


class SettingsProtocol(Protocol):
    database_url: Any
    db_pool_size: int


async def _init_connection(conn: asyncpg.Connection) -> None:
    # json/jsonb columns round-trip as Python objects instead of strings.
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=lambda value: json.dumps(value, ensure_ascii=False),
            decoder=json.loads,
            schema="pg_catalog",
        )


async def init_pool(database_url: str, pool_size: int) -> asyncpg.Pool:
    """Create the process-wide pool once; later calls return the same pool."""
    global pool
    if pool is None:
        pool = await asyncpg.create_pool(
            dsn=database_url,
            max_size=pool_size,
            init=_init_connection,
        )
    return pool


async def close_pool(_app: Any = None) -> None:
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def get_pool() -> asyncpg.Pool:
    """Return the initialized pool (raises if ``init_pool`` was never awaited)."""
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return pool


async def get_connection() -> AsyncIterator[asyncpg.Connection]:
    current = await get_pool()
    async with current.acquire() as conn:
        yield conn


def create_pool_hooks(settings: SettingsProtocol) -> tuple[Any, Any]:
    """Build aiohttp ``on_startup``/``on_cleanup`` hooks bound to *settings*."""

    async def init_pool_hook(_app: Any = None) -> None:
        await init_pool(str(settings.database_url), settings.db_pool_size)

    async def close_pool_hook(_app: Any = None) -> None:
        await close_pool(_app)

    return init_pool_hook, close_pool_hook
