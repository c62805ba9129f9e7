from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from fakes import FakeTransport, emirates_payload, emirates_table

from forex_rates.errors import InvalidRequestError, UpstreamError
from forex_rates.models import Endpoint, RateRequest
from forex_rates.providers.emirates import (
    EMIRATES_RATES_URL,
    EmiratesProvider,
    parse_last_updated,
    parse_rates_payload,
    parse_rates_table,
)

DUBAI = ZoneInfo("Asia/Dubai")


def _request(**overrides) -> RateRequest:
    values = dict(
        endpoint=Endpoint.HISTORICAL,
        provider_code="emirates",
        base_currency="AED",
        symbols=("USD", "EUR"),
        date=date(2024, 1, 14),
        provider_location="Asia/Dubai",
    )
    values.update(overrides)
    return RateRequest(**values)


def test_parse_rates_table_maps_names_and_skips_noise() -> None:
    html = emirates_table(
        {
            "US Dollar": "3.6725",
            "Indian  Rupee": "0.044170",
            "Korean Won": "0.002750",
            "Atlantean Drachma": "1.0",
            "Euro": "n/a",
        }
    )
    assert parse_rates_table(html) == {"USD": 3.6725, "INR": 0.04417, "KRW": 0.00275}


def test_parse_last_updated_is_provider_local() -> None:
    parsed = parse_last_updated("14 Jan 2024  06:00 PM", DUBAI)
    assert parsed.astimezone(timezone.utc) == datetime(2024, 1, 14, 14, 0, tzinfo=timezone.utc)
    with pytest.raises(UpstreamError):
        parse_last_updated("yesterday evening", DUBAI)


def test_parse_rates_payload_inverts_reverse_quotes() -> None:
    table = parse_rates_payload(emirates_payload(date(2024, 1, 14)), date(2024, 1, 14), DUBAI)
    assert table.reverse_rates == {"USD": 4.0, "EUR": 2.0, "GBP": 5.0, "JPY": 0.025}
    assert table.direct_rates == {"USD": 0.25, "EUR": 0.5, "GBP": 0.2, "JPY": 40.0}
    assert table.timestamp == int(datetime(2024, 1, 14, 14, 0, tzinfo=timezone.utc).timestamp())


def test_payload_without_table_is_upstream_error() -> None:
    with pytest.raises(UpstreamError):
        parse_rates_payload({"error": "maintenance"}, date(2024, 1, 14), DUBAI)


def test_table_without_known_currencies_is_upstream_error() -> None:
    payload = emirates_payload(date(2024, 1, 14), {"Atlantean Drachma": "1.0", "US Dollar": "0"})
    with pytest.raises(UpstreamError, match="no recognised rates"):
        parse_rates_payload(payload, date(2024, 1, 14), DUBAI)


def test_validate_structure_requires_aed_leg(emirates: EmiratesProvider) -> None:
    emirates.validate(_request())
    emirates.validate(_request(base_currency="USD", symbols=("AED",)))
    with pytest.raises(InvalidRequestError):
        emirates.validate(_request(base_currency="USD", symbols=("EUR",)))
    with pytest.raises(InvalidRequestError):
        emirates.validate(_request(base_currency="USD", symbols=("AED", "EUR")))


@pytest.mark.parametrize(
    "overrides",
    [
        {"date": date(2024, 1, 16)},
        {"date": date(2024, 1, 9)},
        {"symbols": ("XYZ",)},
        {"symbols": ()},
        {"date": None},
    ],
)
def test_validate_rejects_bad_requests(emirates: EmiratesProvider, overrides) -> None:
    with pytest.raises(InvalidRequestError):
        emirates.validate(_request(**overrides))


def test_fetch_historical_persists_closed_days(emirates: EmiratesProvider, emirates_transport, store) -> None:
    response = emirates.fetch_historical(_request())

    assert response.rates == {"USD": 0.25, "EUR": 0.5}
    assert emirates_transport.calls == [(EMIRATES_RATES_URL, {"date": "2024-01-14", "v": 2})]
    # Four direct rows AED->X and four reverse rows X->AED.
    assert store.count("emirates") == 8


def test_fetch_reverse_pair(emirates: EmiratesProvider) -> None:
    response = emirates.fetch_historical(_request(base_currency="GBP", symbols=("AED",)))
    assert response.rates == {"AED": 5.0}


def test_fetch_for_today_is_not_persisted(emirates: EmiratesProvider, store) -> None:
    emirates.fetch_historical(_request(date=date(2024, 1, 15)))
    assert store.count() == 0


def test_forced_fetch_is_not_persisted(emirates: EmiratesProvider, store) -> None:
    emirates.fetch_historical(_request(force=True))
    assert store.count() == 0


def test_fetch_latest_redirects_to_finalised_day(emirates: EmiratesProvider, emirates_transport, store) -> None:
    response = emirates.fetch_latest(_request(endpoint=Endpoint.LATEST, date=None, force=True))
    assert response.rates == {"USD": 0.25, "EUR": 0.5}
    # 16:00 in Dubai is before the 18:00 generation time.
    assert emirates_transport.calls[0][1]["date"] == "2024-01-14"
    assert store.count() == 0


def test_missing_symbol_in_table_is_upstream_error(emirates_config, store, clock) -> None:
    transport = FakeTransport(lambda url, params: emirates_payload(date(2024, 1, 14), {"US Dollar": "4.0"}))
    provider = EmiratesProvider(emirates_config, store, transport, clock=clock)
    with pytest.raises(UpstreamError):
        provider.fetch_historical(_request())


def test_preload_without_persist_leaves_store_alone(emirates: EmiratesProvider, store) -> None:
    table = emirates.preload(date(2024, 1, 12), persist=False)
    assert table.persisted is None
    assert store.count() == 0

    table = emirates.preload(date(2024, 1, 12), persist=True)
    assert table.persisted.inserted == 8
    assert emirates.preload(date(2024, 1, 12), persist=True).persisted.skipped == 8
