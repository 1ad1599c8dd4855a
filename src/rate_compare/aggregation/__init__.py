"""Concurrent aggregation and result caching."""

from .cache import CacheKey, RateCache
from .orchestrator import AggregatorState, RateAggregator

__all__ = [
    "AggregatorState",
    "CacheKey",
    "RateAggregator",
    "RateCache",
]
