from .cache import CacheEntry, ResultCache, normalize_city_key

__all__ = [
    "CacheEntry",
    "ResultCache",
    "normalize_city_key",
]
