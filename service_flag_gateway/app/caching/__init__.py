"""
Gateway caching package.

Holds the LRU flag cache with stale-while-revalidate reads and the coalescer
that keeps concurrent misses for one key down to a single origin fetch.
Failures are never cached.
"""

from .coalescer import Coalescer
from .flag_cache import CacheEntry, CacheLookup, CacheOutcome, FlagCache

__all__ = ["CacheEntry", "CacheLookup", "CacheOutcome", "Coalescer", "FlagCache"]
