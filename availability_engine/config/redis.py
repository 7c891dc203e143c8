# availability_engine/config/redis.py
"""
Redis connection for the API process.

Celery talks to Redis through its own broker connection; the API only needs
the pool for health checks.
"""
import logging
from typing import Optional

import redis.asyncio as redis

from availability_engine.config.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

_redis_pool: Optional[redis.ConnectionPool] = None


def get_redis_pool() -> redis.ConnectionPool:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=2,
            retry_on_timeout=True,
        )
    return _redis_pool


async def get_redis() -> redis.Redis:
    return redis.Redis(connection_pool=get_redis_pool())


async def ping_redis() -> None:
    """Raise if the broker's Redis cannot be reached"""
    client = await get_redis()
    try:
        await client.ping()
    finally:
        await client.aclose()


async def close_redis_pool() -> None:
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection pool closed")
