from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable

import pytest
from fakes import NOW, FakeTransport, emirates_responder

from forex_rates.config import ProviderConfig, build_config
from forex_rates.db.sqlalchemy_store import SQLAlchemyRateStore
from forex_rates.providers.emirates import EmiratesProvider
from forex_rates.providers.fixer import FixerProvider


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def store(tmp_path) -> SQLAlchemyRateStore:
    rate_store = SQLAlchemyRateStore(f"sqlite:///{tmp_path / 'rates.db'}")
    rate_store.ensure_schema()
    yield rate_store
    rate_store.close()


@pytest.fixture
def emirates_config() -> ProviderConfig:
    return ProviderConfig(
        code="emirates",
        location="Asia/Dubai",
        rates_generated_time="18:00:00",
        historical_preload=True,
        historical_start_date=date(2024, 1, 10),
    )


@pytest.fixture
def emirates_transport() -> FakeTransport:
    return FakeTransport(emirates_responder())


@pytest.fixture
def emirates(emirates_config, store, emirates_transport, clock) -> EmiratesProvider:
    return EmiratesProvider(emirates_config, store, emirates_transport, clock=clock)


@pytest.fixture
def fixer_config() -> ProviderConfig:
    return ProviderConfig(code="fixer", api_key="secret", supported_currencies=("EUR", "USD", "GBP", "AED"))


@pytest.fixture
def fixer_transport() -> FakeTransport:
    def _respond(url: str, params: dict) -> Any:
        rates = {"EUR": 1.0, "USD": 1.25, "GBP": 0.8, "AED": 4.0}
        symbols = params.get("symbols")
        if symbols:
            rates = {code: rates[code] for code in symbols.split(",")}
        return {
            "success": True,
            "timestamp": int(NOW.timestamp()),
            "base": params["base"],
            "date": url.rsplit("/", 1)[-1],
            "rates": rates,
        }

    return FakeTransport(_respond)


@pytest.fixture
def fixer(fixer_config, store, fixer_transport, clock) -> FixerProvider:
    return FixerProvider(fixer_config, store, fixer_transport, clock=clock)


@pytest.fixture
def app_config(tmp_path):
    return build_config(
        {
            "database": {"url": f"sqlite:///{tmp_path / 'app.db'}"},
            "collector": {"random_delay": 0},
            "providers": {
                "emirates": {
                    "location": "Asia/Dubai",
                    "rates_generated_time": "18:00:00",
                    "historical_start_date": "2024-01-10",
                },
                "fixer": {"api_key": "secret"},
            },
        },
        environ={},
    )
