"""
Caching package: the per-client TTL cache and the CRUD query cache.
"""

from .ttl_cache import CacheEntry, TTLCache
from .query_cache import QueryCache, QueryEntry, QueryKey, make_query_key, stable_serialize

__all__ = [
    "CacheEntry",
    "TTLCache",
    "QueryCache",
    "QueryEntry",
    "QueryKey",
    "make_query_key",
    "stable_serialize",
]
