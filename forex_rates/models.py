"""Data models shared by the cache tiers, providers and the rate store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable

from forex_rates.errors import StorageError
from forex_rates.utils.date_range import DATE_FORMAT, parse_date


class Endpoint(str, Enum):
    """API endpoints a rate request can originate from."""

    HISTORICAL = "historical"
    LATEST = "latest"


def normalise_symbols(symbols: Iterable[str]) -> tuple[str, ...]:
    """Upper-case, strip and de-duplicate ``symbols`` keeping first occurrence order."""

    seen: dict[str, None] = {}
    for symbol in symbols:
        cleaned = symbol.strip().upper()
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)


@dataclass(frozen=True, slots=True)
class RateRequest:
    """Canonical rate query; doubles as the cache key.

    ``force`` and ``is_forwarded`` shape how the request is served but are not
    part of its cacheable identity (see :meth:`cache_key`).
    """

    endpoint: Endpoint
    provider_code: str
    base_currency: str
    symbols: tuple[str, ...]
    date: date | None = None
    provider_location: str = "UTC"
    force: bool = False
    is_forwarded: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "endpoint", Endpoint(self.endpoint))
        object.__setattr__(self, "base_currency", self.base_currency.strip().upper())
        object.__setattr__(self, "symbols", normalise_symbols(self.symbols))
        if isinstance(self.date, datetime):
            object.__setattr__(self, "date", self.date.date())

    @property
    def is_historical(self) -> bool:
        return self.endpoint is Endpoint.HISTORICAL

    def is_equal_currency_request(self) -> bool:
        return len(self.symbols) == 1 and self.symbols[0] == self.base_currency

    def non_base_symbols(self) -> tuple[str, ...]:
        return tuple(symbol for symbol in self.symbols if symbol != self.base_currency)

    def date_string(self) -> str:
        return self.date.strftime(DATE_FORMAT) if self.date else ""

    def with_changes(self, **changes: Any) -> "RateRequest":
        return replace(self, **changes)

    def _identity(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint.value,
            "provider_code": self.provider_code,
            "provider_location": self.provider_location,
            "date": self.date_string(),
            "base_currency": self.base_currency,
            "symbols": sorted(self.symbols),
        }

    def cache_key(self) -> str:
        """Serialise the cacheable identity (no ``force``/``is_forwarded``)."""

        return json.dumps(self._identity(), sort_keys=True, separators=(",", ":"))

    def to_json(self) -> str:
        payload = self._identity()
        payload["symbols"] = list(self.symbols)
        payload["force"] = self.force
        payload["is_forwarded"] = self.is_forwarded
        return json.dumps(payload, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "RateRequest":
        data = json.loads(raw)
        return cls(
            endpoint=Endpoint(data["endpoint"]),
            provider_code=data["provider_code"],
            provider_location=data.get("provider_location", "UTC"),
            date=parse_date(data["date"]) if data.get("date") else None,
            base_currency=data["base_currency"],
            symbols=tuple(data.get("symbols", ())),
            force=bool(data.get("force", False)),
            is_forwarded=bool(data.get("is_forwarded", False)),
        )


@dataclass(slots=True)
class RateResponse:
    """Result of a rate query.

    ``timestamp`` is when the provider generated the rates, not when they were
    fetched.
    """

    rates: dict[str, float] = field(default_factory=dict)
    timestamp: int = 0

    def to_json(self) -> str:
        return json.dumps({"rates": self.rates, "timestamp": self.timestamp}, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "RateResponse":
        try:
            data = json.loads(raw)
            rates = {str(code): float(value) for code, value in data["rates"].items()}
            timestamp = int(data["timestamp"])
        except (TypeError, ValueError, KeyError, AttributeError) as exc:
            raise StorageError(f"Malformed cached rate payload: {exc}") from exc
        return cls(rates=rates, timestamp=timestamp)


@dataclass(slots=True)
class CurrencyRateRecord:
    """Representation of a single currency-pair rate fact in the durable store."""

    provider: str
    base_currency: str
    quoted_currency: str
    value: float
    rate_date: date
    provider_generated_time: datetime
    request_time: datetime
    endpoint: Endpoint = Endpoint.HISTORICAL


__all__ = [
    "CurrencyRateRecord",
    "Endpoint",
    "RateRequest",
    "RateResponse",
    "normalise_symbols",
]
