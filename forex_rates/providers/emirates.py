"""Central Bank of the UAE rates, scraped from the published HTML table."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Mapping
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup

from forex_rates.errors import InvalidRequestError, UpstreamError
from forex_rates.models import RateRequest, RateResponse
from forex_rates.providers.base import PreloadResult, RatesProvider
from forex_rates.utils.date_range import DATE_FORMAT
from forex_rates.utils.logger import get_logger
from forex_rates.utils.rates import invert_rate, round_rate

LOGGER = get_logger(__name__)

EMIRATES_RATES_URL = "https://www.centralbank.ae/en/fx-rates-ajax"
ANCHOR_CURRENCY = "AED"

LAST_UPDATED_FORMATS = (
    "%d %b %Y %I:%M %p",
    "%d %b %Y %I:%M%p",
    "%d %b %Y %H:%M:%S %p",
    "%d %b %Y %H:%M:%S%p",
)

CURRENCY_NAMES: dict[str, str] = {
    "US Dollar": "USD",
    "Argentine Peso": "ARS",
    "Australian Dollar": "AUD",
    "Bangladesh Taka": "BDT",
    "Bahrani Dinar": "BHD",
    "Brunei Dollar": "BND",
    "Brazilian Real": "BRL",
    "Botswana Pula": "BWP",
    "Belarus Rouble": "BYN",
    "Canadian Dollar": "CAD",
    "Swiss Franc": "CHF",
    "Chilean Peso": "CLP",
    "Chinese Yuan - Offshore": "CNH",
    "Chinese Yuan": "CNY",
    "Colombian Peso": "COP",
    "Czech Koruna": "CZK",
    "Danish Krone": "DKK",
    "Algerian Dinar": "DZD",
    "Egypt Pound": "EGP",
    "Euro": "EUR",
    "GB Pound": "GBP",
    "Hongkong Dollar": "HKD",
    "Hungarian Forint": "HUF",
    "Indonesia Rupiah": "IDR",
    "Indian Rupee": "INR",
    "Iceland Krona": "ISK",
    "Jordan Dinar": "JOD",
    "Japanese Yen": "JPY",
    "Kenya Shilling": "KES",
    "Korean Won": "KRW",
    "Kuwaiti Dinar": "KWD",
    "Kazakhstan Tenge": "KZT",
    "Lebanon Pound": "LBP",
    "Sri Lanka Rupee": "LKR",
    "Moroccan Dirham": "MAD",
    "Macedonia Denar": "MKD",
    "Mexican Peso": "MXN",
    "Malaysia Ringgit": "MYR",
    "Nigerian Naira": "NGN",
    "Norwegian Krone": "NOK",
    "NewZealand Dollar": "NZD",
    "Omani Rial": "OMR",
    "Peru Sol": "PEN",
    "Philippine Piso": "PHP",
    "Pakistan Rupee": "PKR",
    "Polish Zloty": "PLN",
    "Qatari Riyal": "QAR",
    "Serbian Dinar": "RSD",
    "Russia Rouble": "RUB",
    "Saudi Riyal": "SAR",
    "Sudanese Pound": "SDG",
    "Swedish Krona": "SEK",
    "Singapore Dollar": "SGD",
    "Thai Baht": "THB",
    "Tunisian Dinar": "TND",
    "Turkish Lira": "TRY",
    "Trin Tob Dollar": "TTD",
    "Taiwan Dollar": "TWD",
    "Tanzania Shilling": "TZS",
    "Uganda Shilling": "UGX",
    "Vietnam Dong": "VND",
    "Yemen Rial": "YER",
    "South Africa Rand": "ZAR",
    "Zambian Kwacha": "ZMW",
    "Azerbaijan manat": "AZN",
    "Bulgarian lev": "BGN",
    "Croatian kuna": "HRK",
    "Ethiopian birr": "ETB",
    "Iraqi dinar": "IQD",
    "Israeli new shekel": "ILS",
    "Libyan dinar": "LYD",
    "Mauritian rupee": "MUR",
    "Romanian leu": "RON",
    "Syrian pound": "SYP",
    "Turkmen manat": "TMT",
    "Uzbekistani som": "UZS",
}


def _cell_text(cell) -> str:
    return " ".join(cell.stripped_strings).strip()


def parse_rates_table(html: str) -> dict[str, float]:
    """Parse the ``name | AED per unit`` table into reverse rates keyed by ISO code.

    Rows with an unknown display name or a non-numeric value are skipped.
    """

    soup = BeautifulSoup(html, "html.parser")
    rows = soup.select("tbody tr") or soup.find_all("tr")
    reverse: dict[str, float] = {}
    for row in rows:
        cells = row.find_all("td")
        if len(cells) < 2:
            continue
        name = re.sub(r"\s+", " ", _cell_text(cells[0]))
        code = CURRENCY_NAMES.get(name)
        if code is None:
            LOGGER.debug("Skipping unknown currency name %r", name)
            continue
        try:
            reverse[code] = float(_cell_text(cells[1]).replace(",", ""))
        except ValueError:
            continue
    return reverse


def parse_last_updated(value: str, location: ZoneInfo) -> datetime:
    """Parse the provider's ``last_updated`` stamp in its own time zone."""

    cleaned = re.sub(r"\s+", " ", value.strip())
    for fmt in LAST_UPDATED_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=location)
    raise UpstreamError(f"Unable to parse provider timestamp {value!r}")


def parse_rates_payload(payload: Mapping[str, Any], rate_date: date, location: ZoneInfo) -> PreloadResult:
    """Turn the AJAX payload into normalised direct and reverse tables."""

    if not isinstance(payload, Mapping) or "table" not in payload:
        raise UpstreamError("Emirates payload does not contain a rates table")
    raw_reverse = parse_rates_table(str(payload.get("table") or ""))
    generated_at = parse_last_updated(str(payload.get("last_updated") or ""), location)

    # The bank quotes AED per foreign unit; direct rates are derived from the
    # rounded reverse values.
    reverse: dict[str, float] = {}
    direct: dict[str, float] = {}
    for code, value in raw_reverse.items():
        if value <= 0:
            continue
        reverse[code] = round_rate(value)
        direct[code] = invert_rate(reverse[code])
    if not reverse:
        raise UpstreamError(f"Emirates table for {rate_date.isoformat()} has no recognised rates")
    return PreloadResult(
        rate_date=rate_date,
        direct_rates=direct,
        reverse_rates=reverse,
        generated_at=generated_at,
    )


class EmiratesProvider(RatesProvider):
    """Scraped-table provider anchored on the UAE dirham."""

    code = "emirates"
    default_location = "Asia/Dubai"
    default_currencies = tuple(sorted({ANCHOR_CURRENCY, *CURRENCY_NAMES.values()}))

    def validate_structure(self, request: RateRequest) -> None:
        if request.base_currency == ANCHOR_CURRENCY:
            return
        if request.symbols == (ANCHOR_CURRENCY,):
            return
        raise InvalidRequestError("provider needs AED as base currency or AED as the only symbol")

    def fetch_historical(self, request: RateRequest) -> RateResponse:
        self.validate(request)
        assert request.date is not None
        table = self.preload(request.date, persist=self.should_persist(request))
        if request.base_currency == ANCHOR_CURRENCY:
            rates = self.pick_rates(table.direct_rates, ANCHOR_CURRENCY, request.symbols)
        else:
            if request.base_currency not in table.reverse_rates:
                raise UpstreamError(f"provider did not publish a {request.base_currency}/AED rate")
            rates = {ANCHOR_CURRENCY: table.reverse_rates[request.base_currency]}
        return RateResponse(rates=rates, timestamp=table.timestamp)

    def preload(self, rate_date: date, persist: bool) -> PreloadResult:
        payload = self.transport.get_json(
            EMIRATES_RATES_URL,
            params={"date": rate_date.strftime(DATE_FORMAT), "v": 2},
        )
        table = parse_rates_payload(payload, rate_date, self.location)
        LOGGER.info("Fetched %s emirates rates for %s", len(table.reverse_rates), rate_date.isoformat())
        if persist:
            table.persisted = self.persist_table(ANCHOR_CURRENCY, table)
        return table


__all__ = [
    "ANCHOR_CURRENCY",
    "CURRENCY_NAMES",
    "EMIRATES_RATES_URL",
    "EmiratesProvider",
    "parse_last_updated",
    "parse_rates_payload",
    "parse_rates_table",
]
