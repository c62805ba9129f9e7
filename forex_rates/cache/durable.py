"""Durable tier: historical facts read from and admitted into the rate store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from forex_rates.db.base_backend import PersistenceResult, RateStore
from forex_rates.errors import NotFoundError
from forex_rates.models import CurrencyRateRecord, Endpoint, RateRequest, RateResponse
from forex_rates.utils.date_range import local_today, utc_now
from forex_rates.utils.logger import get_logger
from forex_rates.utils.rates import round_rate

LOGGER = get_logger(__name__)


class DurableTier:
    """Serves immutable, closed-day rates out of a :class:`RateStore`."""

    def __init__(self, store: RateStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self._clock = clock

    def get(self, request: RateRequest) -> RateResponse:
        """Return the stored rates for ``request`` or raise :class:`NotFoundError`.

        Partial matches are misses: every non-base symbol must be stored.
        """

        if request.endpoint is not Endpoint.HISTORICAL or request.date is None:
            raise NotFoundError("Latest rates are never served from the durable store")
        symbols = request.non_base_symbols()
        if not symbols:
            raise NotFoundError("Value not found in durable store")
        records = self.store.fetch_rates(
            provider=request.provider_code,
            base_currency=request.base_currency,
            quoted_currencies=symbols,
            rate_date=request.date,
            endpoint=Endpoint.HISTORICAL,
        )
        if len(records) < len(symbols):
            raise NotFoundError("Value not found in durable store")
        rates = {record.quoted_currency: record.value for record in records}
        if len(symbols) != len(request.symbols):
            rates[request.base_currency] = 1.0
        timestamp = int(records[0].provider_generated_time.timestamp())
        return RateResponse(rates=rates, timestamp=timestamp)

    def can_admit(self, request: RateRequest) -> bool:
        """Only closed days of the historical endpoint, never forced requests."""

        if request.endpoint is not Endpoint.HISTORICAL or request.date is None:
            return False
        if request.force:
            return False
        today = local_today(ZoneInfo(request.provider_location), self._clock())
        return request.date < today

    def set(self, request: RateRequest, response: RateResponse) -> PersistenceResult | None:
        if not self.can_admit(request):
            return None
        assert request.date is not None
        generated_at = datetime.fromtimestamp(response.timestamp, timezone.utc)
        now = self._clock()
        records = [
            CurrencyRateRecord(
                provider=request.provider_code,
                endpoint=Endpoint.HISTORICAL,
                base_currency=request.base_currency,
                quoted_currency=quoted,
                value=round_rate(value),
                rate_date=request.date,
                provider_generated_time=generated_at,
                request_time=now,
            )
            for quoted, value in response.rates.items()
            if quoted != request.base_currency
        ]
        return self.store.insert_rates(records)


__all__ = ["DurableTier"]
