"""
Cache Service Singleton - Report Insight Platform
app/services/cache.py

Provides a singleton Redis cache instance with TTL constants and the key
helpers used by the read API. Gracefully handles Redis unavailability.
"""
import logging
import redis
from typing import Optional
from app.services.redis_cache import RedisCache
from app.config import settings
from app.models.enumerations import ReportCategory

logger = logging.getLogger(__name__)

# TTL constants (in seconds)
TTL_REPORTS = settings.CACHE_TTL_REPORTS        # report pages, 5 minutes
TTL_EVALUATION = settings.CACHE_TTL_EVALUATION  # filtered evaluation, 1 hour

EVALUATION_KEY = "industry:evaluation"

# Singleton instance
_cache: Optional[RedisCache] = None


def report_page_key(category: ReportCategory, page: int, page_size: int) -> str:
    return f"reports:{category.value}:page:{page}:{page_size}"


def report_pages_pattern(category: ReportCategory) -> str:
    return f"reports:{category.value}:*"


def get_cache() -> Optional[RedisCache]:
    """
    Shared RedisCache, created on first use.

    Returns None when the server cannot be reached; callers then read
    straight from the stores, and the next call tries to connect again.
    """
    global _cache
    if _cache is None:
        try:
            _cache = RedisCache()
            _cache.client.ping()  # Test connection
        except (redis.RedisError, ConnectionError):
            logger.warning("⚠️  Redis unavailable, response caching disabled")
            _cache = None
    return _cache


def reset_cache() -> None:
    """Forget the shared instance so the next get_cache() reconnects."""
    global _cache
    _cache = None
