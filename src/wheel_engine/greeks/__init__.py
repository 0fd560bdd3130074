"""Greeks cache and rate-limited fetcher."""

from .cache import CacheEntry, CacheLookup, CacheStats, CacheStatus, GreeksCache
from .fetcher import FetchRequest, GreeksFetcher, GreeksResult, RequestState, ResultStatus
from .provider import GreeksProvider, PolygonGreeksProvider, is_transient_status, parse_snapshot
from .rate_limiter import RateLimiterState, SlidingWindowRateLimiter

__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheStats",
    "CacheStatus",
    "FetchRequest",
    "GreeksCache",
    "GreeksFetcher",
    "GreeksProvider",
    "GreeksResult",
    "PolygonGreeksProvider",
    "RateLimiterState",
    "RequestState",
    "ResultStatus",
    "SlidingWindowRateLimiter",
    "is_transient_status",
    "parse_snapshot",
]
