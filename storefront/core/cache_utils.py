"""
Caching for expensive list and report queries.
Backed by Redis (django-redis) when REDIS_URL is set, local memory otherwise.
"""
import hashlib
import logging
from functools import wraps

from django.core.cache import cache
from django_redis import get_redis_connection
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def make_cache_key(prefix, *args, **kwargs):
    """`prefix:<md5 of the arguments>`"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    return f"{prefix}:{hashlib.md5(key_data.encode()).hexdigest()}"


def invalidate_cache_pattern(pattern):
    """
    Delete every key containing `pattern`.
    Redis is walked with SCAN. Other backends cannot be scanned, so the whole
    cache is cleared instead.
    """
    try:
        redis_conn = get_redis_connection("default")
    except NotImplementedError:
        cache.clear()
        logger.debug(f"Cleared local cache for pattern: {pattern}")
        return

    try:
        keys = list(redis_conn.scan_iter(match=f"*{pattern}*", count=100))
        if keys:
            redis_conn.delete(*keys)
    except RedisError as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {e}")
        return
    logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")


class CacheNamespace:
    """A key prefix with its own TTL"""

    def __init__(self, prefix, ttl):
        self.prefix = prefix
        self.ttl = ttl

    def key(self, *args, **kwargs):
        return make_cache_key(self.prefix, *args, **kwargs)

    def lookup(self, *args, **kwargs):
        """(cached value or None, key) for the given arguments"""
        cache_key = self.key(*args, **kwargs)
        return cache.get(cache_key), cache_key

    def store(self, cache_key, data):
        cache.set(cache_key, data, self.ttl)
        logger.debug(f"Cached {self.prefix}: {cache_key}")

    def invalidate(self):
        invalidate_cache_pattern(self.prefix)


PRODUCTS_LIST = CacheNamespace("products_list", 120)
CATEGORY_TREE = CacheNamespace("category_tree", 600)
DASHBOARD = CacheNamespace("dashboard_kpis", 300)
REPORTS = CacheNamespace("reports", 600)


def cached_query(namespace):
    """
    Cache a function's return value under `namespace`, keyed on its arguments.

    Usage:
        @cached_query(REPORTS)
        def sales_by_day(date_from, date_to):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cached_data, cache_key = namespace.lookup(func.__name__, *args, **kwargs)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {namespace.prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {namespace.prefix}: {cache_key}")
            result = func(*args, **kwargs)
            namespace.store(cache_key, result)
            return result
        return wrapper
    return decorator
