"""Memory/disk cache layer with TTL expiry and single-flight population."""

from .manager import CacheManager, CacheResult, KEY_DELIMITER, NEVER_EXPIRES
from .store import CacheEntry, CacheStrategy, DiskCache, MemoryCache

__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheResult",
    "CacheStrategy",
    "DiskCache",
    "KEY_DELIMITER",
    "MemoryCache",
    "NEVER_EXPIRES",
]
