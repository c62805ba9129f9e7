"""fixer.io REST API provider."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping

from forex_rates.errors import InvalidRequestError, UpstreamError
from forex_rates.models import RateRequest, RateResponse
from forex_rates.providers.base import PreloadResult, RatesProvider
from forex_rates.utils.date_range import DATE_FORMAT
from forex_rates.utils.logger import get_logger
from forex_rates.utils.rates import round_rate

LOGGER = get_logger(__name__)

FIXER_API_URL = "https://data.fixer.io/api/"
# Free fixer plans only allow EUR as the base of a full table.
PRELOAD_BASE_CURRENCY = "EUR"

DEFAULT_CURRENCIES = (
    "AED", "AUD", "BGN", "BRL", "CAD", "CHF", "CNY", "CZK", "DKK", "EUR", "GBP",
    "HKD", "HUF", "IDR", "ILS", "INR", "ISK", "JPY", "KRW", "MXN", "MYR", "NOK",
    "NZD", "PHP", "PLN", "RON", "RUB", "SAR", "SEK", "SGD", "THB", "TRY", "USD", "ZAR",
)


def parse_fixer_payload(payload: Mapping[str, Any]) -> tuple[dict[str, float], datetime]:
    """Return rounded rates and the provider timestamp from a fixer response."""

    if not isinstance(payload, Mapping):
        raise UpstreamError("fixer returned an unexpected payload")
    if not payload.get("success", False):
        error = payload.get("error") or {}
        info = error.get("info") or error.get("type") or "unknown error"
        raise UpstreamError(f"fixer error {error.get('code', '?')}: {info}")
    try:
        rates = {str(code): round_rate(value) for code, value in (payload.get("rates") or {}).items()}
        generated_at = datetime.fromtimestamp(int(payload["timestamp"]), timezone.utc)
    except (KeyError, TypeError, ValueError) as exc:
        raise UpstreamError(f"fixer payload could not be parsed: {exc}") from exc
    return rates, generated_at


class FixerProvider(RatesProvider):
    """REST provider; quotes are already direct (quote units per base unit)."""

    code = "fixer"
    default_location = "UTC"
    default_currencies = DEFAULT_CURRENCIES

    def validate_structure(self, request: RateRequest) -> None:
        if not self.config.api_key:
            raise InvalidRequestError("fixer provider has no api_key configured")

    def _fetch(self, rate_date: date, base_currency: str, symbols: Iterable[str] = ()) -> tuple[dict[str, float], datetime]:
        params: dict[str, Any] = {"access_key": self.config.api_key, "base": base_currency}
        symbol_list = [symbol for symbol in symbols if symbol != base_currency]
        if symbol_list:
            params["symbols"] = ",".join(symbol_list)
        payload = self.transport.get_json(f"{FIXER_API_URL}{rate_date.strftime(DATE_FORMAT)}", params=params)
        return parse_fixer_payload(payload)

    def fetch_historical(self, request: RateRequest) -> RateResponse:
        self.validate(request)
        assert request.date is not None
        rates, generated_at = self._fetch(request.date, request.base_currency, request.symbols)
        selected = self.pick_rates(rates, request.base_currency, request.symbols)
        return RateResponse(rates=selected, timestamp=int(generated_at.timestamp()))

    def preload(self, rate_date: date, persist: bool) -> PreloadResult:
        rates, generated_at = self._fetch(rate_date, PRELOAD_BASE_CURRENCY)
        rates.pop(PRELOAD_BASE_CURRENCY, None)
        if not rates:
            raise UpstreamError(f"fixer returned no rates for {rate_date.isoformat()}")
        table = PreloadResult(rate_date=rate_date, direct_rates=rates, generated_at=generated_at)
        LOGGER.info("Fetched %s fixer rates for %s", len(rates), rate_date.isoformat())
        if persist:
            table.persisted = self.persist_table(PRELOAD_BASE_CURRENCY, table)
        return table


__all__ = ["DEFAULT_CURRENCIES", "FIXER_API_URL", "FixerProvider", "parse_fixer_payload"]
