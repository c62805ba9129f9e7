"""Closed set of rate providers selected by :class:`ProviderCode`."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Callable, Iterator

from forex_rates.config import AppConfig
from forex_rates.db.base_backend import RateStore
from forex_rates.errors import InvalidRequestError
from forex_rates.providers.base import PreloadResult, RatesProvider
from forex_rates.providers.emirates import EmiratesProvider
from forex_rates.providers.fixer import FixerProvider
from forex_rates.transport import HttpTransport
from forex_rates.utils.date_range import utc_now


class ProviderCode(str, Enum):
    """Supported providers."""

    EMIRATES = "emirates"
    FIXER = "fixer"

    @classmethod
    def parse(cls, value: str) -> "ProviderCode":
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise InvalidRequestError(f"provider with code {value!r} is not registered") from exc


PROVIDER_CLASSES: dict[ProviderCode, type[RatesProvider]] = {
    ProviderCode.EMIRATES: EmiratesProvider,
    ProviderCode.FIXER: FixerProvider,
}


class ProviderRegistry:
    """Holds the provider instances enabled by configuration."""

    def __init__(self, providers: dict[ProviderCode, RatesProvider]) -> None:
        self._providers = dict(providers)

    @classmethod
    def build(
        cls,
        config: AppConfig,
        store: RateStore,
        transport: HttpTransport,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> "ProviderRegistry":
        providers: dict[ProviderCode, RatesProvider] = {}
        for code, provider_config in config.providers.items():
            provider_code = ProviderCode.parse(code)
            provider_cls = PROVIDER_CLASSES[provider_code]
            providers[provider_code] = provider_cls(provider_config, store, transport, clock=clock)
        return cls(providers)

    def get(self, code: str | ProviderCode) -> RatesProvider:
        provider_code = code if isinstance(code, ProviderCode) else ProviderCode.parse(code)
        provider = self._providers.get(provider_code)
        if provider is None:
            raise InvalidRequestError(f"provider with code {provider_code.value!r} is not configured")
        return provider

    def backfill_enabled(self) -> list[RatesProvider]:
        return [provider for provider in self._providers.values() if provider.backfill_enabled]

    def __iter__(self) -> Iterator[RatesProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)


__all__ = [
    "EmiratesProvider",
    "FixerProvider",
    "PROVIDER_CLASSES",
    "PreloadResult",
    "ProviderCode",
    "ProviderRegistry",
    "RatesProvider",
]
