"""
Serving Module
"""
from .cache import (
    CacheManager,
    close_redis,
    get_redis,
    init_redis,
    is_redis_ready,
    kpis_cache,
    views_cache,
)

__all__ = [
    "CacheManager",
    "close_redis",
    "get_redis",
    "init_redis",
    "is_redis_ready",
    "kpis_cache",
    "views_cache",
]
