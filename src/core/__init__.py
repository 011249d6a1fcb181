"""Core caching logic for the Roastery API."""

from .cache_settings import CacheSettings, CacheTTL
from .sweeper import CacheSweeper
from .ttl_store import CacheEntry, CacheStats, MemoryInfo, TTLStore

__all__ = [
    "CacheEntry",
    "CacheSettings",
    "CacheStats",
    "CacheSweeper",
    "CacheTTL",
    "MemoryInfo",
    "TTLStore",
]
