"""Capability interface implemented by every rates provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Callable, ClassVar, Iterable
from zoneinfo import ZoneInfo

from forex_rates.config import ProviderConfig
from forex_rates.db.base_backend import PersistenceResult, RateStore
from forex_rates.errors import InvalidRequestError, UpstreamError
from forex_rates.models import CurrencyRateRecord, Endpoint, RateRequest, RateResponse
from forex_rates.transport import HttpTransport
from forex_rates.utils.date_range import finalized_date, local_today, utc_now
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class PreloadResult:
    """A full rate table for one calendar day.

    ``direct_rates`` quote foreign units per anchor unit, ``reverse_rates``
    anchor units per foreign unit. Providers that only publish one side leave
    the other empty.
    """

    rate_date: date
    direct_rates: dict[str, float] = field(default_factory=dict)
    reverse_rates: dict[str, float] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.fromtimestamp(0, timezone.utc))
    persisted: PersistenceResult | None = None

    @property
    def timestamp(self) -> int:
        return int(self.generated_at.timestamp())


class RatesProvider(ABC):
    """Base class shared by scraped and API-backed providers."""

    code: ClassVar[str]
    default_location: ClassVar[str] = "UTC"
    default_currencies: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        config: ProviderConfig,
        store: RateStore,
        transport: HttpTransport,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self._clock = clock

    # Static metadata ---------------------------------------------------
    @property
    def location_name(self) -> str:
        return self.config.location or self.default_location

    @property
    def location(self) -> ZoneInfo:
        return ZoneInfo(self.location_name)

    @property
    def generation_time(self) -> time:
        return self.config.generation_time

    @property
    def supported_currencies(self) -> tuple[str, ...]:
        return self.config.supported_currencies or self.default_currencies

    @property
    def backfill_enabled(self) -> bool:
        return self.config.historical_preload

    @property
    def historical_start_date(self) -> date | None:
        return self.config.historical_start_date

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return local_today(self.location, self.now())

    def finalized_date(self, now: datetime | None = None) -> date:
        """Return the most recent provider-local day whose rates are final."""

        return finalized_date(self.location, self.generation_time, now or self.now())

    # Validation --------------------------------------------------------
    def validate(self, request: RateRequest) -> None:
        """Raise :class:`InvalidRequestError` when ``request`` cannot be served."""

        if request.is_historical and request.date is None:
            raise InvalidRequestError("historical requests require a date")
        if not request.symbols:
            raise InvalidRequestError("at least one quoted currency symbol is required")
        if request.date is not None and request.date > self.today():
            raise InvalidRequestError("date should not be in future")

        supported = set(self.supported_currencies)
        if request.base_currency not in supported:
            raise InvalidRequestError(f"base currency {request.base_currency} is not supported by {self.code}")
        for symbol in request.symbols:
            if symbol not in supported:
                raise InvalidRequestError(f"quoted currency {symbol} is not supported by {self.code}")

        start = self.historical_start_date
        if start is not None and request.date is not None and request.date < start:
            raise InvalidRequestError(
                f"request date is before provider {self.code} historical_start_date: {start.isoformat()}"
            )
        self.validate_structure(request)

    def validate_structure(self, request: RateRequest) -> None:
        """Provider specific constraints; the default accepts any pair."""

    # Fetching ----------------------------------------------------------
    @abstractmethod
    def fetch_historical(self, request: RateRequest) -> RateResponse:
        """Return rates for ``request.date`` straight from the provider."""

    def fetch_latest(self, request: RateRequest) -> RateResponse:
        """Serve the latest request as the most recent finalised historical day.

        The request is marked as forwarded so the redirection does not trigger
        a second durable write.
        """

        forwarded = request.with_changes(
            date=self.finalized_date(),
            force=False,
            is_forwarded=True,
        )
        return self.fetch_historical(forwarded)

    @abstractmethod
    def preload(self, rate_date: date, persist: bool) -> PreloadResult:
        """Fetch the whole rate table for ``rate_date`` and optionally store it."""

    def should_persist(self, request: RateRequest) -> bool:
        """True when a live fetch for ``request`` may be written durably."""

        if request.endpoint is not Endpoint.HISTORICAL or request.date is None:
            return False
        if request.force or request.is_forwarded:
            return False
        return request.date < self.today()

    # Persistence -------------------------------------------------------
    def build_record(
        self,
        base_currency: str,
        quoted_currency: str,
        value: float,
        rate_date: date,
        generated_at: datetime,
    ) -> CurrencyRateRecord:
        return CurrencyRateRecord(
            provider=self.code,
            endpoint=Endpoint.HISTORICAL,
            base_currency=base_currency,
            quoted_currency=quoted_currency,
            value=value,
            rate_date=rate_date,
            provider_generated_time=generated_at.astimezone(timezone.utc),
            request_time=utc_now(),
        )

    def persist_table(self, anchor: str, table: PreloadResult) -> PersistenceResult:
        """Store every pair of ``table``: ``anchor→X`` direct, ``X→anchor`` reverse."""

        records = [
            self.build_record(anchor, quoted, value, table.rate_date, table.generated_at)
            for quoted, value in table.direct_rates.items()
        ]
        records.extend(
            self.build_record(base, anchor, value, table.rate_date, table.generated_at)
            for base, value in table.reverse_rates.items()
        )
        result = self.store.insert_rates(records)
        LOGGER.info(
            "%s %s → inserted %s rows, skipped %s existing rows",
            self.code,
            table.rate_date.isoformat(),
            result.inserted,
            result.skipped,
        )
        return result

    @staticmethod
    def pick_rates(table: dict[str, float], base_currency: str, symbols: Iterable[str]) -> dict[str, float]:
        """Select ``symbols`` from ``table``; the base itself is always ``1``."""

        selected: dict[str, float] = {}
        for symbol in symbols:
            if symbol == base_currency:
                selected[symbol] = 1.0
                continue
            if symbol not in table:
                raise UpstreamError(f"provider did not publish a {base_currency}/{symbol} rate")
            selected[symbol] = table[symbol]
        return selected


__all__ = ["PreloadResult", "RatesProvider"]
