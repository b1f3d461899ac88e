"""Cache tiers (capability contract and LRU implementation)."""

from tiercache.tiers.base import Entry, Tier
from tiercache.tiers.lru import LRUStore, LRUTier

__all__ = ["Entry", "Tier", "LRUStore", "LRUTier"]
