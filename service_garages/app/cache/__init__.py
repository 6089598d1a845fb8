"""
Cache stores for garage snapshots.
"""

from .store import CacheStore, LocalCacheStore, RedisCacheStore, create_cache_store

__all__ = ["CacheStore", "LocalCacheStore", "RedisCacheStore", "create_cache_store"]
