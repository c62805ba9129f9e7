"""requests-based transport shared by every provider."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlsplit

import requests

from forex_rates.errors import UpstreamError
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_USER_AGENT = "forex-rates/1.0 (+https://github.com/forex-rates)"


class HttpTransport:
    """Thin wrapper around :class:`requests.Session` that always applies a timeout."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: requests.Session | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": user_agent,
                "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
                "Cache-Control": "no-cache",
            }
        )

    def _get(self, url: str, params: Mapping[str, Any] | None) -> requests.Response:
        # Query strings may carry API keys, keep them out of the logs.
        safe_url = _without_query(url)
        LOGGER.debug("GET %s", safe_url)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as exc:
            raise UpstreamError(f"Timed out after {self.timeout}s waiting for {safe_url}") from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"Request to {safe_url} failed: {exc.__class__.__name__}") from exc
        self._raise_with_context(response, safe_url)
        return response

    def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        response = self._get(url, params)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"{_without_query(url)} returned a non-JSON body") from exc

    @staticmethod
    def _raise_with_context(response: requests.Response, url: str) -> None:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = response.status_code
            hint = ""
            if status in {403, 418, 429}:
                hint = " The upstream source is throttling automated requests; retry later."
            raise UpstreamError(f"{url} responded with HTTP {status}.{hint}") from exc

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpTransport":  # pragma: no cover - trivial
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # pragma: no cover - trivial
        self.close()


def _without_query(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


__all__ = ["DEFAULT_USER_AGENT", "HttpTransport"]
