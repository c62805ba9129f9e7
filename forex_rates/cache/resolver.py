"""Two-stage cache resolution with tier-specific admission rules."""

from __future__ import annotations

from typing import NamedTuple

from forex_rates.cache.durable import DurableTier
from forex_rates.cache.memory import MemoryTier
from forex_rates.errors import NotFoundError
from forex_rates.models import RateRequest, RateResponse
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)


class CacheResult(NamedTuple):
    response: RateResponse | None
    hit: bool
    tier: str | None = None


MISS = CacheResult(None, False, None)


class TieredCacheResolver:
    """Memory tier first, then the durable tier for historical requests.

    Only "not found" conditions fall through to the next tier. Any other error
    (corrupt payload, unreachable store) propagates to the caller so a storage
    outage never degrades into silent provider over-fetching.
    """

    def __init__(self, memory: MemoryTier, durable: DurableTier) -> None:
        self.memory = memory
        self.durable = durable

    def resolve(self, request: RateRequest) -> CacheResult:
        if not request.force:
            try:
                response = self.memory.get(request)
            except NotFoundError:
                LOGGER.debug("Memory cache miss for %s", request.cache_key())
            else:
                LOGGER.debug("Memory cache hit for %s", request.cache_key())
                return CacheResult(response, True, "memory")

        if not request.is_historical:
            return MISS

        try:
            response = self.durable.get(request)
        except NotFoundError:
            LOGGER.debug("Durable store miss for %s", request.cache_key())
            return MISS
        LOGGER.debug("Durable store hit for %s", request.cache_key())
        if not request.force:
            self.memory.set(request, response)
        return CacheResult(response, True, "durable")

    def admit(self, request: RateRequest, response: RateResponse) -> None:
        """Write ``response`` back into every tier that accepts ``request``."""

        if not request.force:
            self.memory.set(request, response)
        if self.durable.can_admit(request):
            result = self.durable.set(request, response)
            if result is not None:
                LOGGER.debug(
                    "Admitted %s rows (%s already stored) for %s",
                    result.inserted,
                    result.skipped,
                    request.cache_key(),
                )


__all__ = ["CacheResult", "MISS", "TieredCacheResolver"]
