"""Process lifecycle and the JSON HTTP API."""

from __future__ import annotations

import argparse
import threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Sequence

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from forex_rates.backfill import BackfillOrchestrator
from forex_rates.cache import DurableTier, MemoryTier, TieredCacheResolver
from forex_rates.config import AppConfig, load_config
from forex_rates.db.base_backend import RateStore
from forex_rates.db.sqlalchemy_store import SQLAlchemyRateStore
from forex_rates.errors import ForexRatesError, InvalidRequestError
from forex_rates.models import Endpoint, RateRequest, RateResponse, normalise_symbols
from forex_rates.providers import ProviderCode, ProviderRegistry
from forex_rates.scheduler import DailyScheduler
from forex_rates.service import RatesService
from forex_rates.transport import HttpTransport
from forex_rates.utils.date_range import parse_date, utc_now
from forex_rates.utils.logger import get_logger, set_log_level

LOGGER = get_logger(__name__)

API_PREFIX = "/api/v1"


class Application:
    """Owns every long-lived collaborator; stop() releases them in reverse order."""

    def __init__(
        self,
        config: AppConfig,
        *,
        store: RateStore | None = None,
        transport: HttpTransport | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.store = store or SQLAlchemyRateStore(config.database_url)
        self.store.ensure_schema()
        self.transport = transport or HttpTransport(timeout=config.collector.timeout)
        self.registry = ProviderRegistry.build(config, self.store, self.transport, clock=clock)
        self.memory = MemoryTier(
            ttl=config.cache.default_expiration,
            maxsize=config.cache.max_entries,
            cleanup_interval=config.cache.cleanup_interval,
        )
        self.durable = DurableTier(self.store, clock=clock)
        self.resolver = TieredCacheResolver(self.memory, self.durable)
        self.service = RatesService(self.registry, self.resolver, clock=clock)
        self.orchestrator = BackfillOrchestrator(
            self.store,
            parallelism=config.collector.parallelism,
            random_delay=config.collector.random_delay,
            clock=clock,
        )
        self.scheduler = DailyScheduler(self.orchestrator, self.registry.backfill_enabled(), clock=clock)
        self._startup_backfill: threading.Thread | None = None

    def start(self) -> None:
        """Kick off the startup backfill in the background and arm the daily trigger."""

        providers = self.registry.backfill_enabled()
        if providers:
            self._startup_backfill = threading.Thread(
                target=self._run_startup_backfill,
                name="startup-backfill",
                daemon=True,
            )
            self._startup_backfill.start()
        self.scheduler.start()

    def _run_startup_backfill(self) -> None:
        try:
            self.orchestrator.run_all(self.registry.backfill_enabled())
        except Exception:
            LOGGER.exception("Startup backfill failed")

    def stop(self, timeout: float | None = 5.0) -> None:
        self.orchestrator.stop()
        self.scheduler.stop(timeout)
        if self._startup_backfill is not None:
            # Days already dispatched finish before the store is closed.
            self._startup_backfill.join(timeout)
            if self._startup_backfill.is_alive():
                LOGGER.warning("Startup backfill still running after %ss", timeout)
            self._startup_backfill = None
        self.transport.close()
        self.store.close()
        LOGGER.info("Application stopped")

    def __enter__(self) -> "Application":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


# Request decoding --------------------------------------------------------
def parse_base(value: str) -> str:
    base = value.strip()
    if len(base) != 3 or not base.isalpha():
        raise InvalidRequestError(f"unsupported base currency. Received: {value!r}")
    return base.upper()


def parse_symbols(value: str) -> tuple[str, ...]:
    symbols = normalise_symbols(value.split(","))
    if not symbols:
        raise InvalidRequestError("at least one quoted currency symbol is required")
    for symbol in symbols:
        if len(symbol) != 3 or not symbol.isalpha():
            raise InvalidRequestError(f"unsupported quoted currency. Received: {symbol!r}")
    return symbols


def parse_request_date(value: str):
    try:
        return parse_date(value)
    except ValueError as exc:
        raise InvalidRequestError(f"invalid date {value!r}, expected YYYY-MM-DD") from exc


def build_request(
    endpoint: Endpoint,
    provider: str,
    base: str,
    symbols: str,
    force: bool,
    date: str | None = None,
) -> RateRequest:
    return RateRequest(
        endpoint=endpoint,
        provider_code=ProviderCode.parse(provider).value,
        base_currency=parse_base(base),
        symbols=parse_symbols(symbols),
        date=parse_request_date(date) if date is not None else None,
        force=force,
    )


# Response encoding -------------------------------------------------------
def success_payload(request: RateRequest, response: RateResponse) -> dict:
    return {
        "success": True,
        "historical": request.is_historical,
        "date": request.date_string(),
        "timestamp": response.timestamp,
        "base": request.base_currency,
        "rates": response.rates,
    }


def failure_response(code: int, info: str) -> JSONResponse:
    http_status = code if 400 <= code < 600 else status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(
        status_code=http_status,
        content={"success": False, "error": {"code": code, "info": info}},
    )


def forex_error_handler(request: Request, exc: ForexRatesError) -> JSONResponse:
    if exc.code >= 500:
        LOGGER.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return failure_response(exc.code, exc.message)


def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}" for error in exc.errors()
    )
    return failure_response(status.HTTP_400_BAD_REQUEST, f"error parsing request. {details}")


def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return failure_response(exc.status_code, f"No route for {request.method} {request.url.path}")
    return failure_response(exc.status_code, str(exc.detail))


def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled exception for %s %s", request.method, request.url.path)
    return failure_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred.")


def create_app(application: Application, *, manage_lifecycle: bool = True) -> FastAPI:
    """Build the FastAPI app serving ``application``.

    With ``manage_lifecycle`` the lifespan starts the background backfill on
    startup and releases every resource on shutdown.
    """

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if manage_lifecycle:
            application.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                application.stop()

    app = FastAPI(title="forex-rates", debug=application.config.server.debug, lifespan=lifespan)
    app.state.application = application

    app.add_exception_handler(ForexRatesError, forex_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, server_error_handler)

    @app.get("/")
    def root() -> dict:
        return {"message": "forex-rates API", "docs": "/docs"}

    @app.get(f"{API_PREFIX}/status")
    def api_status() -> dict:
        return {"message": "Success"}

    @app.get(f"{API_PREFIX}/historical/{{provider}}/{{date}}")
    def historical(
        provider: str,
        date: str,
        base: str = Query(""),
        symbols: str = Query(""),
        force: bool = Query(False),
    ) -> dict:
        request = build_request(Endpoint.HISTORICAL, provider, base, symbols, force, date)
        resolved, response = application.service.historical(request)
        return success_payload(resolved, response)

    @app.get(f"{API_PREFIX}/latest/{{provider}}")
    def latest(
        provider: str,
        base: str = Query(""),
        symbols: str = Query(""),
        force: bool = Query(False),
    ) -> dict:
        request = build_request(Endpoint.LATEST, provider, base, symbols, force)
        resolved, response = application.service.latest(request)
        return success_payload(resolved, response)

    return app


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve historical and latest currency rates over HTTP.")
    parser.add_argument("--config", dest="config_path", help="Path to the YAML configuration")
    parser.add_argument("--host", help="Override server.host")
    parser.add_argument("--port", type=int, help="Override server.port")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:  # pragma: no cover - CLI entry point
    import uvicorn

    args = parse_args(argv)
    config = load_config(args.config_path)
    set_log_level(config.log_level)
    application = Application(config)
    app = create_app(application)
    uvicorn.run(
        app,
        host=args.host or config.server.host,
        port=args.port or config.server.port,
        log_level=config.log_level.lower(),
    )


__all__ = [
    "API_PREFIX",
    "Application",
    "build_request",
    "create_app",
    "main",
    "parse_args",
    "parse_base",
    "parse_symbols",
    "success_payload",
]


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
