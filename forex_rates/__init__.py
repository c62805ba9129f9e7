"""Public interface for the forex_rates package."""

from __future__ import annotations

from importlib import metadata as importlib_metadata

from forex_rates.config import AppConfig, load_config
from forex_rates.errors import (
    ForexRatesError,
    InvalidRequestError,
    NotFoundError,
    StorageError,
    UpstreamError,
)
from forex_rates.models import CurrencyRateRecord, Endpoint, RateRequest, RateResponse

__all__ = [
    "__version__",
    "AppConfig",
    "Application",
    "CurrencyRateRecord",
    "Endpoint",
    "ForexRatesError",
    "InvalidRequestError",
    "NotFoundError",
    "RateRequest",
    "RateResponse",
    "StorageError",
    "UpstreamError",
    "create_app",
    "load_config",
    "backfill_from_config",
]

try:
    __version__ = importlib_metadata.version("forex-rates")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - fallback for local runs
    __version__ = "0.1.0"


def backfill_from_config(*args, **kwargs):
    from forex_rates.backfill import backfill_from_config as _backfill

    return _backfill(*args, **kwargs)


def __getattr__(name: str):
    # The web stack is only imported when the application is actually used.
    if name == "Application":
        from forex_rates.app import Application

        return Application
    if name == "create_app":
        from forex_rates.app import create_app

        return create_app
    raise AttributeError(f"module 'forex_rates' has no attribute {name!r}")
