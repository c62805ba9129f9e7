"""Fill the durable store with every finalised day it is missing.

Usable as a library (:class:`BackfillOrchestrator`) or from the command line::

    forex-rates-backfill --provider emirates --to 2024-01-31
"""

from __future__ import annotations

import argparse
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Sequence

from forex_rates.db.base_backend import PersistenceResult, RateStore
from forex_rates.models import Endpoint
from forex_rates.providers.base import RatesProvider
from forex_rates.utils.date_range import DateRange, iter_days, parse_date, utc_now
from forex_rates.utils.logger import get_logger, set_log_level

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class BackfillReport:
    """Outcome of one provider run."""

    provider: str
    requested: list[date] = field(default_factory=list)
    succeeded: list[date] = field(default_factory=list)
    failed: list[date] = field(default_factory=list)
    persisted: PersistenceResult = field(default_factory=PersistenceResult)

    @property
    def is_noop(self) -> bool:
        return not self.requested


class BackfillOrchestrator:
    """Replays the gap between the store's newest day and the finalised day."""

    def __init__(
        self,
        store: RateStore,
        *,
        parallelism: int = 4,
        random_delay: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.store = store
        self.parallelism = parallelism
        self.random_delay = max(random_delay, 0.0)
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Refuse new provider runs and stop dispatching days of the current one."""

        self._stop.set()

    def range_end(self, provider: RatesProvider, now: datetime | None = None) -> date:
        return provider.finalized_date(now or self._clock())

    def range_start(self, provider: RatesProvider, end: date | None = None) -> date:
        """Day after the newest stored day, else the configured start date.

        Without either, only ``end`` itself is fetched.
        """

        latest = self.store.latest_rate_date(provider.code, Endpoint.HISTORICAL)
        if latest is not None:
            return latest + timedelta(days=1)
        if provider.historical_start_date is not None:
            return provider.historical_start_date
        return end if end is not None else self.range_end(provider)

    @staticmethod
    def gap_dates(start: date, end: date) -> list[date]:
        return list(DateRange(start, end))

    def missing_dates(self, provider: RatesProvider, latest: date | None) -> list[date]:
        """Days at or below ``latest`` that an earlier run failed to store."""

        if latest is None:
            return []
        floor = provider.historical_start_date
        stored = self.store.stored_dates(provider.code, Endpoint.HISTORICAL, start=floor, end=latest)
        if not stored:
            return []
        return [day for day in iter_days(floor or min(stored), latest) if day not in stored]

    def run(self, provider: RatesProvider, end: date | None = None) -> BackfillReport:
        """Fetch and persist every missing day of ``provider`` up to ``end``."""

        finalized = self.range_end(provider)
        end_date = finalized if end is None else min(end, finalized)
        start_date = self.range_start(provider, end_date)
        latest = self.store.latest_rate_date(provider.code, Endpoint.HISTORICAL)
        holes = [day for day in self.missing_dates(provider, latest) if day <= end_date]
        requested = sorted(set(holes) | set(self.gap_dates(start_date, end_date)))
        report = BackfillReport(provider=provider.code, requested=requested)
        if report.is_noop:
            LOGGER.info("%s already backfilled up to %s; nothing to do", provider.code, end_date)
            return report

        if holes:
            LOGGER.warning(
                "Retrying %s %s days missing from the store: %s",
                len(holes),
                provider.code,
                ", ".join(day.isoformat() for day in holes),
            )
        LOGGER.info(
            "Backfilling %s: %s days from %s to %s",
            provider.code,
            len(report.requested),
            start_date,
            end_date,
        )
        with ThreadPoolExecutor(
            max_workers=min(self.parallelism, len(report.requested)),
            thread_name_prefix=f"backfill-{provider.code}",
        ) as pool:
            futures: dict[Future, date] = {}
            for index, rate_date in enumerate(report.requested):
                if self.stopped:
                    LOGGER.info("Backfill of %s stopped before %s", provider.code, rate_date)
                    break
                if index and self.random_delay:
                    self._sleep(self._rng.uniform(0, self.random_delay))
                futures[pool.submit(provider.preload, rate_date, True)] = rate_date

            for future in as_completed(futures):
                rate_date = futures[future]
                try:
                    table = future.result()
                except Exception as exc:
                    LOGGER.warning("%s backfill failed for %s: %s", provider.code, rate_date, exc)
                    report.failed.append(rate_date)
                    continue
                report.succeeded.append(rate_date)
                if table.persisted is not None:
                    report.persisted += table.persisted

        report.succeeded.sort()
        report.failed.sort()
        LOGGER.info(
            "%s backfill finished: %s days ok, %s failed, inserted %s rows, skipped %s rows",
            provider.code,
            len(report.succeeded),
            len(report.failed),
            report.persisted.inserted,
            report.persisted.skipped,
        )
        return report

    def run_all(self, providers: Iterable[RatesProvider]) -> list[BackfillReport]:
        reports = []
        for provider in providers:
            if self.stopped:
                LOGGER.info("Backfill stopped; skipping remaining providers")
                break
            if not provider.backfill_enabled:
                LOGGER.debug("Backfill disabled for %s", provider.code)
                continue
            reports.append(self.run(provider))
        return reports


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill missing daily rate tables into the durable store.")
    parser.add_argument(
        "--provider",
        dest="providers",
        action="append",
        help="Provider code to backfill (repeatable; defaults to every provider with historical_preload)",
    )
    parser.add_argument("--to", dest="end", help="Last date to backfill (YYYY-MM-DD)")
    parser.add_argument("--config", dest="config_path", help="Path to the YAML configuration")
    parser.add_argument("--log-level", dest="log_level", help="Override the configured log level")
    return parser.parse_args(argv)


def backfill_from_config(
    config_path: str | None = None,
    *,
    providers: Sequence[str] | None = None,
    end: date | None = None,
    log_level: str | None = None,
) -> list[BackfillReport]:
    """Load configuration and backfill ``providers`` (default: every enabled one)."""

    from forex_rates.app import Application
    from forex_rates.config import load_config

    config = load_config(config_path)
    set_log_level(log_level or config.log_level)
    with Application(config) as application:
        if providers:
            selected = [application.registry.get(code) for code in providers]
            return [application.orchestrator.run(provider, end) for provider in selected]
        return application.orchestrator.run_all(application.registry)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    backfill_from_config(
        args.config_path,
        providers=args.providers,
        end=parse_date(args.end) if args.end else None,
        log_level=args.log_level,
    )


__all__ = ["BackfillOrchestrator", "BackfillReport", "backfill_from_config", "main", "parse_args"]


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
