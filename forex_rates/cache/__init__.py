"""Two-tier rate cache: an in-memory TTL tier in front of the durable store."""

from __future__ import annotations

from forex_rates.cache.durable import DurableTier
from forex_rates.cache.memory import MemoryTier
from forex_rates.cache.resolver import CacheResult, TieredCacheResolver

__all__ = ["CacheResult", "DurableTier", "MemoryTier", "TieredCacheResolver"]
