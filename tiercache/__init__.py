"""Simulated multi-tier LRU cache hierarchy."""

from tiercache.coordinator import CacheCoordinator, CascadeState
from tiercache.exceptions import (
    ConfigurationError,
    CoordinatorStoppedError,
    TierCacheException,
    TierOperationError,
    WorkerPoolError,
)
from tiercache.models import CacheStats, ReadResult, TierSpec, TierUsage
from tiercache.tiers import Entry, LRUStore, LRUTier, Tier

__all__ = [
    "CacheCoordinator",
    "CascadeState",
    "CacheStats",
    "ReadResult",
    "TierSpec",
    "TierUsage",
    "Entry",
    "LRUStore",
    "LRUTier",
    "Tier",
    "ConfigurationError",
    "CoordinatorStoppedError",
    "TierCacheException",
    "TierOperationError",
    "WorkerPoolError",
]
