"""Error taxonomy shared by the cache tiers, providers and HTTP layer."""

from __future__ import annotations


class ForexRatesError(Exception):
    """Base class for every error surfaced by forex_rates.

    ``code`` is the numeric code rendered in the JSON failure payload and used
    as the HTTP status by the API layer.
    """

    code: int = 500

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class NotFoundError(ForexRatesError):
    """A cache tier or the rate store does not hold the requested value."""

    code = 404


class InvalidRequestError(ForexRatesError):
    """Bad currency code, unsupported pair, out-of-range date or unknown provider."""

    code = 400


class StorageError(ForexRatesError):
    """The durable store is unreachable, a query failed or a payload is corrupt."""

    code = 503


class UpstreamError(ForexRatesError):
    """A provider fetch failed or returned data that cannot be parsed."""

    code = 502


__all__ = [
    "ForexRatesError",
    "InvalidRequestError",
    "NotFoundError",
    "StorageError",
    "UpstreamError",
]
