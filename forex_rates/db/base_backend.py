"""Storage interface for durable currency-rate facts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

from forex_rates.models import CurrencyRateRecord, Endpoint


@dataclass(slots=True)
class PersistenceResult:
    """How many rows a batch inserted and how many already existed."""

    inserted: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.skipped

    def __iadd__(self, other: "PersistenceResult") -> "PersistenceResult":
        self.inserted += other.inserted
        self.skipped += other.skipped
        return self


class RateStore(ABC):
    """Common interface implemented by every durable rate store.

    Facts are immutable: :meth:`insert_rates` never overwrites an existing
    ``(provider, endpoint, base, quote, date)`` row.
    """

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create required tables and verify connectivity."""

    @abstractmethod
    def insert_rates(self, rows: Sequence[CurrencyRateRecord]) -> PersistenceResult:
        """Insert facts, leaving already recorded rows untouched."""

    @abstractmethod
    def fetch_rates(
        self,
        *,
        provider: str,
        base_currency: str,
        quoted_currencies: Iterable[str],
        rate_date: date,
        endpoint: Endpoint = Endpoint.HISTORICAL,
    ) -> list[CurrencyRateRecord]:
        """Return the facts matching one base currency and day."""

    @abstractmethod
    def latest_rate_date(
        self, provider: str, endpoint: Endpoint = Endpoint.HISTORICAL
    ) -> date | None:
        """Return the most recent ``rate_date`` recorded for ``provider``."""

    @abstractmethod
    def stored_dates(
        self,
        provider: str,
        endpoint: Endpoint = Endpoint.HISTORICAL,
        *,
        start: date | None = None,
        end: date | None = None,
    ) -> set[date]:
        """Return the distinct days with at least one fact for ``provider``."""

    @abstractmethod
    def count(self, provider: str | None = None) -> int:
        """Return the number of stored facts."""

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Stores may override to release connections/resources."""


__all__ = ["PersistenceResult", "RateStore"]
