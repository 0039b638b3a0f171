"""
Projection Caches

Versioned result cache and the day-TTL volatility cache.
"""

from .result_cache import ResultCache, CacheKey, CacheEntry, UpsertSummary
from .volatility_cache import VolatilityCache

__all__ = [
    'ResultCache',
    'CacheKey',
    'CacheEntry',
    'UpsertSummary',
    'VolatilityCache',
]
