"""Redis cache for dashboard reads, degrading to no-ops when Redis is down."""

from typing import Any

import orjson
import redis.asyncio as aioredis
import structlog

from engagement_service.config import get_settings

logger = structlog.get_logger()

_redis_client: aioredis.Redis | None = None


async def get_redis_client() -> aioredis.Redis | None:
    """Get or create the global async Redis client, None when unreachable."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        client = aioredis.from_url(
            settings.redis_url,
            decode_responses=False,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.warning("Redis unavailable, leaderboard caching disabled", error=str(e))
            await client.aclose()
            return None
        _redis_client = client
        logger.info("Redis connection established")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class CacheService:
    """JSON values in Redis via orjson. Every operation is a no-op without a client."""

    def __init__(self, client: aioredis.Redis | None):
        self.client = client

    async def get(self, key: str) -> Any | None:
        if not self.client:
            return None
        try:
            data = await self.client.get(key)
        except Exception as e:
            logger.warning("Cache get failed", key=key, error=str(e))
            return None
        return orjson.loads(data) if data else None

    async def set(self, key: str, value: Any, ttl_seconds: int = 60) -> None:
        if not self.client:
            return
        try:
            await self.client.set(key, orjson.dumps(value), ex=ttl_seconds)
        except Exception as e:
            logger.warning("Cache set failed", key=key, error=str(e))

    async def delete(self, *keys: str) -> None:
        if not self.client or not keys:
            return
        try:
            await self.client.delete(*keys)
        except Exception as e:
            logger.warning("Cache delete failed", keys=list(keys), error=str(e))

    async def health_check(self) -> bool:
        if not self.client:
            return False
        try:
            return bool(await self.client.ping())
        except Exception:
            return False


async def get_cache() -> CacheService:
    """Dependency for FastAPI to get the cache service."""
    return CacheService(await get_redis_client())
