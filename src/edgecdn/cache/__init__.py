"""
Cache package for the edge tier.

This package provides:
- CacheProtocol (base.py): interface every edge cache backend implements
- CacheStore (memory.py): bounded in-memory LRU store with TTL expiry
"""

from edgecdn.cache.base import CacheProtocol, CacheStats
from edgecdn.cache.memory import CacheStore

__all__ = ["CacheProtocol", "CacheStats", "CacheStore"]
