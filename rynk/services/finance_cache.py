"""Postgres-backed TTL cache for market data lookups."""

from __future__ import annotations

import time
from typing import Any

from loguru import logger

from rynk.services import database

# Seconds per data type
CACHE_TTL: dict[str, int] = {
    "quote": 60,
    "history_1d": 300,
    "history_5d": 3600,
    "history_1mo": 3600,
    "history_1y": 3600,
    "fundamentals": 86400,
    "news": 900,
}


def get_ttl(data_type: str) -> int:
    """Unknown data types expire as fast as quotes."""
    return CACHE_TTL.get(data_type, CACHE_TTL["quote"])


def cache_key(source: str, symbol: str, data_type: str) -> str:
    return f"{source}:{symbol.lower()}:{data_type}"


class FinanceCache:
    """Cache rows keyed by ``source:symbol:data_type``.

    Every failure is logged and reported as a miss (``None`` / ``0``) so a
    broken cache never blocks a market data request.
    """

    async def get(self, source: str, symbol: str, data_type: str) -> Any | None:
        key = cache_key(source, symbol, data_type)
        try:
            pool = await database.get_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT data FROM finance_cache WHERE id = $1 AND expires_at > $2",
                    key,
                    int(time.time()),
                )
        except Exception as exc:
            logger.error(f"[FinanceCache] Get error for {key}: {exc}")
            return None

        if row is None:
            return None
        logger.debug(f"[FinanceCache] HIT: {key}")
        return row["data"]

    async def set(self, source: str, symbol: str, data_type: str, data: Any) -> None:
        key = cache_key(source, symbol, data_type)
        now = int(time.time())
        try:
            pool = await database.get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO finance_cache (id, source, symbol, data_type, data, created_at, expires_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (id) DO UPDATE
                    SET data = EXCLUDED.data,
                        created_at = EXCLUDED.created_at,
                        expires_at = EXCLUDED.expires_at
                    """,
                    key,
                    source,
                    symbol.lower(),
                    data_type,
                    data,
                    now,
                    now + get_ttl(data_type),
                )
        except Exception as exc:
            logger.error(f"[FinanceCache] Set error for {key}: {exc}")
            return
        logger.debug(f"[FinanceCache] SET: {key} (TTL: {get_ttl(data_type)}s)")

    async def invalidate(self, source: str, symbol: str, data_type: str) -> None:
        key = cache_key(source, symbol, data_type)
        try:
            pool = await database.get_pool()
            async with pool.acquire() as conn:
                await conn.execute("DELETE FROM finance_cache WHERE id = $1", key)
        except Exception as exc:
            logger.error(f"[FinanceCache] Invalidate error for {key}: {exc}")

    async def invalidate_symbol(self, source: str, symbol: str) -> None:
        """Drop every data type cached for ``symbol`` from one source."""
        try:
            pool = await database.get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM finance_cache WHERE source = $1 AND symbol = $2",
                    source,
                    symbol.lower(),
                )
        except Exception as exc:
            logger.error(f"[FinanceCache] Invalidate symbol error for {source}:{symbol}: {exc}")

    async def cleanup(self) -> int:
        """Delete expired rows and return how many were removed."""
        try:
            pool = await database.get_pool()
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM finance_cache WHERE expires_at < $1",
                    int(time.time()),
                )
        except Exception as exc:
            logger.error(f"[FinanceCache] Cleanup error: {exc}")
            return 0
        # asyncpg returns the command tag, e.g. "DELETE 3"
        deleted = int(result.split()[-1]) if result else 0
        logger.info(f"[FinanceCache] Cleaned up {deleted} expired entries")
        return deleted


finance_cache = FinanceCache()
