"""Daily backfill trigger, one daemon thread per provider."""

from __future__ import annotations

import threading
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Iterable
from zoneinfo import ZoneInfo

from forex_rates.backfill import BackfillOrchestrator
from forex_rates.providers.base import RatesProvider
from forex_rates.utils.date_range import utc_now
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)


def next_run_at(location: ZoneInfo, generated_at: time, now: datetime) -> datetime:
    """Return the next instant ``generated_at`` occurs in ``location`` (UTC).

    An instant exactly at the boundary schedules the following day.
    """

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_now = now.astimezone(location)
    candidate = datetime.combine(local_now.date(), generated_at, tzinfo=location)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), generated_at, tzinfo=location)
    return candidate.astimezone(timezone.utc)


class DailyScheduler:
    """Runs :meth:`BackfillOrchestrator.run` at each provider's generation time."""

    def __init__(
        self,
        orchestrator: BackfillOrchestrator,
        providers: Iterable[RatesProvider],
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.orchestrator = orchestrator
        self.providers = list(providers)
        self._clock = clock
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        if self._threads:
            return
        self._stop.clear()
        for provider in self.providers:
            thread = threading.Thread(
                target=self._loop,
                args=(provider,),
                name=f"backfill-scheduler-{provider.code}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        LOGGER.info("Scheduled daily backfill for %s provider(s)", len(self._threads))

    def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling new runs; a run already in progress completes."""

        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def _loop(self, provider: RatesProvider) -> None:
        while not self._stop.is_set():
            now = self._clock()
            due = next_run_at(provider.location, provider.generation_time, now)
            LOGGER.debug("Next %s backfill at %s", provider.code, due.isoformat())
            if self._stop.wait(max((due - now).total_seconds(), 0.0)):
                return
            try:
                self.orchestrator.run(provider)
            except Exception:
                LOGGER.exception("Scheduled backfill for %s failed", provider.code)


__all__ = ["DailyScheduler", "next_run_at"]
