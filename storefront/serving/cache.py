"""
Redis Cache Module

Short-lived read cache in front of the variant engine:
- Connection pooling
- JSON serialization
- TTL per namespace

The database stays authoritative: any cache failure is logged and treated
as a miss, so the storefront keeps serving without Redis.
"""

import json
from typing import Any, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from storefront.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    _redis_pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=settings.redis.decode_responses,
    )
    _redis_client = Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error("Redis connection failed", error=str(e))
        raise

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None

    logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get Redis client instance"""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


class CacheManager:
    """
    Cache manager with namespace support.

    Example:
        cache = CacheManager("products", default_ttl=60)
        await cache.set("valid-combinations:<group id>", payload)
        payload = await cache.get("valid-combinations:<group id>")
    """

    def __init__(self, namespace: str, default_ttl: int = 3600):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on a miss or when Redis is unavailable"""
        try:
            value = await get_redis().get(self._key(key))
        except (RuntimeError, RedisError) as e:
            logger.warning("Cache read failed", key=self._key(key), error=str(e))
            return None

        if value is None:
            return None

        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry", key=self._key(key))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            serialized = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize value for cache", key=self._key(key), error=str(e))
            return False

        try:
            await get_redis().setex(self._key(key), ttl or self.default_ttl, serialized)
        except (RuntimeError, RedisError) as e:
            logger.warning("Cache write failed", key=self._key(key), error=str(e))
            return False

        return True


products_cache = CacheManager("products", default_ttl=get_settings().redis.combinations_ttl)
