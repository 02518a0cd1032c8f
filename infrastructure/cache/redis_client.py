"""Async Redis connection factory.

Returns an async redis.Redis client, or None if Redis is not configured.
A failed startup ping is logged but the client is still returned: redis-py
reconnects on its own, and every call goes through CacheHandle, which turns
connection errors into degraded results.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.logging import get_logger

log = get_logger(__name__)


async def create_redis_client(redis_uri: Optional[str]) -> Optional[aioredis.Redis]:
    """Build a client for *redis_uri* and ping it once."""
    if not redis_uri:
        log.warning("redis_not_configured", fallback="durable_store_only")
        return None

    client: aioredis.Redis = aioredis.from_url(
        redis_uri,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.ping()
        log.info("redis_connected", uri=redis_uri.split("@")[-1])  # mask credentials
    except (RedisError, OSError) as e:
        log.warning(
            "redis_connection_failed", error=str(e), error_type=type(e).__name__
        )
    return client
