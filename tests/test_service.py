from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from fakes import NOW

from forex_rates.cache import DurableTier, MemoryTier, TieredCacheResolver
from forex_rates.errors import InvalidRequestError, StorageError
from forex_rates.models import Endpoint, RateRequest
from forex_rates.providers import ProviderCode, ProviderRegistry
from forex_rates.providers.emirates import EmiratesProvider
from forex_rates.service import RatesService


class ExplodingRegistry:
    def get(self, code):
        raise AssertionError("provider lookup must not happen")


class ExplodingResolver:
    def resolve(self, request):
        raise AssertionError("cache lookup must not happen")

    def admit(self, request, response):
        raise AssertionError("cache admission must not happen")


class ReadOnlyStoreResolver(TieredCacheResolver):
    def admit(self, request, response):
        raise StorageError("disk full")


def _request(**overrides) -> RateRequest:
    values = dict(
        endpoint=Endpoint.HISTORICAL,
        provider_code="emirates",
        base_currency="AED",
        symbols=("USD",),
        date=date(2024, 1, 14),
    )
    values.update(overrides)
    return RateRequest(**values)


@pytest.fixture
def service(emirates, store, clock) -> RatesService:
    registry = ProviderRegistry({ProviderCode.EMIRATES: emirates})
    resolver = TieredCacheResolver(MemoryTier(), DurableTier(store, clock=clock))
    return RatesService(registry, resolver, clock=clock)


@pytest.mark.parametrize("endpoint", [Endpoint.HISTORICAL, Endpoint.LATEST])
def test_equal_currency_short_circuit(endpoint, clock) -> None:
    service = RatesService(ExplodingRegistry(), ExplodingResolver(), clock=clock)
    request = _request(endpoint=endpoint, base_currency="USD", symbols=("usd",), provider_code="nope")

    resolved, response = service.historical(request) if endpoint is Endpoint.HISTORICAL else service.latest(request)

    assert response.rates == {"USD": 1.0}
    assert response.timestamp == int(NOW.timestamp())
    assert resolved.date is not None


def test_historical_miss_fetches_then_caches(service: RatesService, emirates_transport, store) -> None:
    resolved, response = service.historical(_request())
    assert response.rates == {"USD": 0.25}
    assert resolved.provider_location == "Asia/Dubai"
    assert len(emirates_transport.calls) == 1

    _, again = service.historical(_request())
    assert again.rates == {"USD": 0.25}
    assert len(emirates_transport.calls) == 1
    assert store.count("emirates") == 8


def test_durable_store_serves_after_memory_is_cleared(service: RatesService, emirates_transport) -> None:
    service.historical(_request(symbols=("USD", "EUR")))
    service.resolver.memory.clear()

    _, response = service.historical(_request(symbols=("EUR", "USD")))
    assert response.rates == {"EUR": 0.5, "USD": 0.25}
    assert len(emirates_transport.calls) == 1


def test_today_is_never_written_even_when_forced(service: RatesService, store) -> None:
    for force in (False, True):
        service.historical(_request(date=date(2024, 1, 15), force=force))
    assert store.count() == 0


def test_yesterday_is_written_when_not_forced(service: RatesService, store) -> None:
    service.historical(_request(date=date(2024, 1, 14)))
    assert store.count() > 0


def test_forced_request_bypasses_memory(service: RatesService, emirates_transport) -> None:
    service.historical(_request(date=date(2024, 1, 15)))
    service.historical(_request(date=date(2024, 1, 15), force=True))
    assert len(emirates_transport.calls) == 2


def test_latest_resolves_finalised_date(service: RatesService, emirates_transport, store) -> None:
    resolved, response = service.latest(_request(endpoint=Endpoint.LATEST, date=None))

    assert resolved.date == date(2024, 1, 14)
    assert resolved.endpoint is Endpoint.LATEST
    assert response.rates == {"USD": 0.25}
    assert store.count() == 0

    service.latest(_request(endpoint=Endpoint.LATEST, date=None))
    assert len(emirates_transport.calls) == 1


def test_latest_after_generation_time_uses_today(emirates_config, store, emirates_transport) -> None:
    def evening() -> datetime:
        return datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)  # 18:30 in Dubai

    provider = EmiratesProvider(emirates_config, store, emirates_transport, clock=evening)
    service = RatesService(
        ProviderRegistry({ProviderCode.EMIRATES: provider}),
        TieredCacheResolver(MemoryTier(), DurableTier(store, clock=evening)),
        clock=evening,
    )
    resolved, _ = service.latest(_request(endpoint=Endpoint.LATEST, date=None))
    assert resolved.date == date(2024, 1, 15)
    assert emirates_transport.calls[0][1]["date"] == "2024-01-15"


def test_unconfigured_provider_is_invalid(service: RatesService) -> None:
    with pytest.raises(InvalidRequestError):
        service.historical(_request(provider_code="fixer"))
    with pytest.raises(InvalidRequestError):
        service.historical(_request(provider_code="ecb"))


def test_cache_write_failure_still_returns_rates(emirates, store, clock) -> None:
    resolver = ReadOnlyStoreResolver(MemoryTier(), DurableTier(store, clock=clock))
    service = RatesService(ProviderRegistry({ProviderCode.EMIRATES: emirates}), resolver, clock=clock)
    _, response = service.historical(_request(date=date(2024, 1, 15)))
    assert response.rates == {"USD": 0.25}
