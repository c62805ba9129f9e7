"""Configuration snapshot loaded from YAML with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, time
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from forex_rates.db import DEFAULT_SQLITE_DB_PATH
from forex_rates.utils.date_range import parse_date, parse_time_of_day
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)

CONFIG_ENV_VAR = "FOREX_RATES_CONFIG"
DEFAULT_CONFIG_PATH = Path("configs") / "config.yml"
KNOWN_PROVIDERS = frozenset({"emirates", "fixer"})


class ConfigError(ValueError):
    """Raised when the configuration document is invalid."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


def default_database_url() -> str:
    return f"sqlite:///{quote(DEFAULT_SQLITE_DB_PATH.as_posix(), safe='/:')}"


@dataclass(frozen=True, slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 9090
    debug: bool = False


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """Ephemeral tier settings (seconds)."""

    default_expiration: int = 30
    cleanup_interval: int = 60
    max_entries: int = 10_000


@dataclass(frozen=True, slots=True)
class CollectorConfig:
    """Politeness policy for upstream fetches."""

    parallelism: int = 4
    random_delay: float = 1.0
    timeout: float = 30.0


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Static per-provider metadata; read-only to the rest of the package."""

    code: str
    location: str = "UTC"
    rates_generated_time: str = "23:59:59"
    api_key: str = ""
    supported_currencies: tuple[str, ...] = ()
    historical_preload: bool = False
    historical_start_date: date | None = None

    @property
    def generation_time(self) -> time:
        return parse_time_of_day(self.rates_generated_time)


@dataclass(frozen=True, slots=True)
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    database_url: str = field(default_factory=default_database_url)
    cache: CacheConfig = field(default_factory=CacheConfig)
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    providers: Mapping[str, ProviderConfig] = field(
        default_factory=lambda: MappingProxyType({})
    )
    log_level: str = "INFO"


_SERVER = ServerConfig()
_CACHE = CacheConfig()
_COLLECTOR = CollectorConfig()


def load_config(path: str | Path | None = None, *, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load the YAML configuration and apply environment overrides.

    Resolution order for the file: explicit ``path``, ``$FOREX_RATES_CONFIG``,
    ``configs/config.yml`` in the working directory, built-in defaults.
    """

    env = os.environ if environ is None else environ
    config_path = _resolve_config_path(path, env)
    document: dict[str, Any] = {}
    if config_path is not None:
        LOGGER.info("Loading configuration from %s", config_path)
        with open(config_path, "r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError("<root>", "configuration must be a mapping")
        document = loaded
    return build_config(document, environ=env)


def _resolve_config_path(path: str | Path | None, env: Mapping[str, str]) -> Path | None:
    if path is not None:
        return Path(path)
    if env.get(CONFIG_ENV_VAR):
        return Path(env[CONFIG_ENV_VAR])
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def build_config(document: Mapping[str, Any], *, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Validate a parsed configuration mapping into an :class:`AppConfig`."""

    env = environ or {}
    server_doc = _section(document, "server")
    server = ServerConfig(
        host=str(server_doc.get("host", _SERVER.host)),
        port=_positive_int(env.get("FOREX_RATES_PORT", server_doc.get("port", _SERVER.port)), "server.port"),
        debug=bool(server_doc.get("debug", _SERVER.debug)),
    )

    database_doc = _section(document, "database")
    database_url = env.get("FOREX_RATES_DATABASE_URL") or database_doc.get("url") or default_database_url()

    cache_doc = _section(document, "cache")
    cache = CacheConfig(
        default_expiration=_positive_int(
            env.get("FOREX_RATES_CACHE_TTL", cache_doc.get("default_expiration", _CACHE.default_expiration)),
            "cache.default_expiration",
        ),
        cleanup_interval=_positive_int(
            cache_doc.get("cleanup_interval", _CACHE.cleanup_interval), "cache.cleanup_interval"
        ),
        max_entries=_positive_int(cache_doc.get("max_entries", _CACHE.max_entries), "cache.max_entries"),
    )

    collector_doc = _section(document, "collector")
    random_delay = _number(collector_doc.get("random_delay", _COLLECTOR.random_delay), "collector.random_delay")
    if random_delay < 0:
        raise ConfigError("collector.random_delay", "must not be negative")
    collector = CollectorConfig(
        parallelism=_positive_int(collector_doc.get("parallelism", _COLLECTOR.parallelism), "collector.parallelism"),
        random_delay=random_delay,
        timeout=_positive_number(collector_doc.get("timeout", _COLLECTOR.timeout), "collector.timeout"),
    )

    providers_doc = _section(document, "providers")
    providers: dict[str, ProviderConfig] = {}
    for code, provider_doc in providers_doc.items():
        providers[str(code)] = _build_provider(str(code), provider_doc or {}, env)

    log_level = str(env.get("FOREX_RATES_LOG_LEVEL") or document.get("log_level") or "INFO").upper()

    return AppConfig(
        server=server,
        database_url=str(database_url),
        cache=cache,
        collector=collector,
        providers=MappingProxyType(providers),
        log_level=log_level,
    )


def _build_provider(code: str, doc: Mapping[str, Any], env: Mapping[str, str]) -> ProviderConfig:
    prefix = f"providers.{code}"
    if code not in KNOWN_PROVIDERS:
        raise ConfigError(prefix, f"unknown provider; expected one of {sorted(KNOWN_PROVIDERS)}")
    if not isinstance(doc, Mapping):
        raise ConfigError(prefix, "provider settings must be a mapping")

    location = str(doc.get("location") or "UTC")
    try:
        ZoneInfo(location)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"{prefix}.location", f"unknown time zone {location!r}") from exc

    generated = str(doc.get("rates_generated_time") or "23:59:59")
    try:
        parse_time_of_day(generated)
    except ValueError as exc:
        raise ConfigError(f"{prefix}.rates_generated_time", str(exc)) from exc

    start_raw = doc.get("historical_start_date")
    start_date: date | None = None
    if start_raw:
        try:
            start_date = parse_date(start_raw if isinstance(start_raw, date) else str(start_raw))
        except ValueError as exc:
            raise ConfigError(f"{prefix}.historical_start_date", "expected YYYY-MM-DD") from exc

    currencies = doc.get("supported_currencies") or []
    if isinstance(currencies, str):
        currencies = currencies.split(",")

    api_key = str(doc.get("api_key") or "")
    env_key = env.get(f"{code.upper()}_API_KEY")
    if env_key:
        api_key = env_key

    return ProviderConfig(
        code=code,
        location=location,
        rates_generated_time=generated,
        api_key=api_key,
        supported_currencies=tuple(str(item).strip().upper() for item in currencies if str(item).strip()),
        historical_preload=bool(doc.get("historical_preload", False)),
        historical_start_date=start_date,
    )


def _section(document: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = document.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(name, "section must be a mapping")
    return value


def _number(value: Any, path: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(path, f"expected a number, got {value!r}") from exc


def _positive_number(value: Any, path: str) -> float:
    number = _number(value, path)
    if number <= 0:
        raise ConfigError(path, "must be positive")
    return number


def _positive_int(value: Any, path: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(path, f"expected an integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(path, "must be positive")
    return number


__all__ = [
    "AppConfig",
    "CacheConfig",
    "CollectorConfig",
    "ConfigError",
    "ProviderConfig",
    "ServerConfig",
    "build_config",
    "default_database_url",
    "load_config",
]
