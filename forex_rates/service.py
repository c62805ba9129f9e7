"""Rate lookups: equal-currency short-circuit, cache resolution, live fetch."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from forex_rates.cache.resolver import TieredCacheResolver
from forex_rates.errors import StorageError
from forex_rates.models import Endpoint, RateRequest, RateResponse
from forex_rates.providers import ProviderRegistry
from forex_rates.providers.base import RatesProvider
from forex_rates.utils.date_range import utc_now
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)


class RatesService:
    """Serves historical and latest rate requests through the cache tiers."""

    def __init__(
        self,
        registry: ProviderRegistry,
        resolver: TieredCacheResolver,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.registry = registry
        self.resolver = resolver
        self._clock = clock

    def historical(self, request: RateRequest) -> tuple[RateRequest, RateResponse]:
        """Return ``(resolved_request, response)`` for a historical request."""

        if request.endpoint is not Endpoint.HISTORICAL:
            request = request.with_changes(endpoint=Endpoint.HISTORICAL)
        if request.is_equal_currency_request():
            return request, self._equal_currency_response(request)

        provider = self.registry.get(request.provider_code)
        request = request.with_changes(provider_location=provider.location_name)
        return request, self._serve(provider, request, provider.fetch_historical)

    def latest(self, request: RateRequest) -> tuple[RateRequest, RateResponse]:
        """Return ``(resolved_request, response)`` for a latest request.

        ``date`` is set to the provider's most recent finalised day.
        """

        if request.endpoint is not Endpoint.LATEST:
            request = request.with_changes(endpoint=Endpoint.LATEST)
        if request.is_equal_currency_request():
            request = request.with_changes(date=self._clock().date())
            return request, self._equal_currency_response(request)

        provider = self.registry.get(request.provider_code)
        request = request.with_changes(
            provider_location=provider.location_name,
            date=provider.finalized_date(self._clock()),
        )
        return request, self._serve(provider, request, provider.fetch_latest)

    def _serve(
        self,
        provider: RatesProvider,
        request: RateRequest,
        fetch: Callable[[RateRequest], RateResponse],
    ) -> RateResponse:
        provider.validate(request)
        cached = self.resolver.resolve(request)
        if cached.hit and cached.response is not None:
            LOGGER.debug("Serving %s from %s cache", request.cache_key(), cached.tier)
            return cached.response

        LOGGER.info(
            "Requesting %s rates from provider %s for %s",
            request.endpoint.value,
            provider.code,
            request.date_string() or "latest",
        )
        response = fetch(request)
        try:
            self.resolver.admit(request, response)
        except StorageError:
            LOGGER.warning("Could not cache rates for %s", request.cache_key(), exc_info=True)
        return response

    def _equal_currency_response(self, request: RateRequest) -> RateResponse:
        return RateResponse(
            rates={request.base_currency: 1.0},
            timestamp=int(self._clock().timestamp()),
        )


__all__ = ["RatesService"]
