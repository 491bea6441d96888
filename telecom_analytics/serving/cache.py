"""
Redis Cache Module

Caching layer for on-demand views with:
- Connection pooling
- Automatic serialization
- TTL management
- Namespace invalidation after each pipeline refresh

The API keeps working without Redis: cache reads miss and writes are
skipped when no client is initialized.
"""

import json
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Union

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from telecom_analytics.config import get_settings

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
    client = Redis(connection_pool=_redis_pool)

    # Test connection
    try:
        await client.ping()
    except RedisError as e:
        logger.error("Redis connection failed", error=str(e))
        await _redis_pool.disconnect()
        _redis_pool = None
        raise

    _redis_client = client
    logger.info("Redis connection established")
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


def is_redis_ready() -> bool:
    return _redis_client is not None


async def cache_get(key: str) -> Optional[Any]:
    """
    Get value from cache.

    Args:
        key: Cache key

    Returns:
        Cached value or None if not found
    """
    client = get_redis()
    value = await client.get(key)

    if value is None:
        return None

    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


async def cache_set(
    key: str,
    value: Any,
    ttl: Optional[Union[int, timedelta]] = None,
) -> bool:
    """
    Set value in cache.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time-to-live in seconds or timedelta

    Returns:
        True if successful
    """
    client = get_redis()

    try:
        serialized = json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to serialize value for cache", key=key, error=str(e))
        return False

    if ttl:
        if isinstance(ttl, timedelta):
            ttl = int(ttl.total_seconds())
        await client.setex(key, ttl, serialized)
    else:
        await client.set(key, serialized)

    return True


async def cache_delete_pattern(pattern: str) -> int:
    """Delete all keys matching pattern"""
    client = get_redis()
    keys = [key async for key in client.scan_iter(match=pattern)]

    if not keys:
        return 0

    return await client.delete(*keys)


class CacheManager:
    """
    Cache manager with namespace support and automatic key generation.

    Example:
        cache = CacheManager("views")
        rows = await cache.get_or_set("customer-value", compute_rows)
    """

    def __init__(self, namespace: str, default_ttl: Optional[int] = None):
        self.namespace = namespace
        self._default_ttl = default_ttl

    @property
    def default_ttl(self) -> int:
        if self._default_ttl is not None:
            return self._default_ttl
        return get_settings().pipeline.views_cache_ttl_seconds

    def _key(self, key: str) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache; a miss when Redis is down"""
        if not is_redis_ready():
            return None
        try:
            return await cache_get(self._key(key))
        except RedisError as e:
            logger.warning("Cache read failed", key=self._key(key), error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache"""
        if not is_redis_ready():
            return False
        try:
            return await cache_set(self._key(key), value, ttl or self.default_ttl)
        except RedisError as e:
            logger.warning("Cache write failed", key=self._key(key), error=str(e))
            return False

    async def invalidate_all(self) -> int:
        """Invalidate all keys in namespace"""
        if not is_redis_ready():
            return 0
        try:
            removed = await cache_delete_pattern(f"{self.namespace}:*")
        except RedisError as e:
            logger.warning("Cache invalidation failed", namespace=self.namespace, error=str(e))
            return 0
        logger.info("Cache namespace invalidated", namespace=self.namespace, keys=removed)
        return removed

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Get from cache or compute and cache.

        Args:
            key: Cache key
            factory: Async function to compute value if not cached
            ttl: Time-to-live

        Returns:
            Cached or computed value
        """
        value = await self.get(key)

        if value is not None:
            return value

        value = await factory()
        await self.set(key, value, ttl)

        return value


# Pre-configured cache managers
views_cache = CacheManager("views")
kpis_cache = CacheManager("kpis")
