from __future__ import annotations

import random
from datetime import date, datetime, timezone

import pytest
from fakes import FakeTransport, emirates_payload, emirates_responder

from forex_rates.backfill import BackfillOrchestrator, parse_args
from forex_rates.config import ProviderConfig
from forex_rates.models import CurrencyRateRecord
from forex_rates.providers.emirates import EmiratesProvider


def _orchestrator(store, clock, **kwargs) -> BackfillOrchestrator:
    kwargs.setdefault("sleep", lambda _seconds: None)
    return BackfillOrchestrator(store, parallelism=2, random_delay=0.5, clock=clock, **kwargs)


def _stored_day(store, rate_date: date) -> None:
    generated = datetime(rate_date.year, rate_date.month, rate_date.day, 14, tzinfo=timezone.utc)
    store.insert_rates(
        [
            CurrencyRateRecord(
                provider="emirates",
                base_currency="AED",
                quoted_currency="USD",
                value=0.272294,
                rate_date=rate_date,
                provider_generated_time=generated,
                request_time=generated,
            )
        ]
    )


def test_gap_after_latest_stored_day(emirates, store, clock) -> None:
    _stored_day(store, date(2024, 1, 10))
    orchestrator = _orchestrator(store, clock)

    start = orchestrator.range_start(emirates)
    assert start == date(2024, 1, 11)
    assert orchestrator.gap_dates(start, date(2024, 1, 13)) == [
        date(2024, 1, 11),
        date(2024, 1, 12),
        date(2024, 1, 13),
    ]


def test_range_uses_start_date_then_finalised_day(emirates, store, clock) -> None:
    orchestrator = _orchestrator(store, clock)
    assert orchestrator.range_start(emirates) == date(2024, 1, 10)
    # 16:00 in Dubai, before the 18:00 generation time.
    assert orchestrator.range_end(emirates) == date(2024, 1, 14)
    assert orchestrator.range_end(emirates, datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc)) == date(2024, 1, 15)


def test_range_without_start_date_fetches_only_the_finalised_day(store, emirates_transport, clock) -> None:
    provider = EmiratesProvider(
        ProviderConfig(code="emirates", location="Asia/Dubai", rates_generated_time="18:00"),
        store,
        emirates_transport,
        clock=clock,
    )
    report = _orchestrator(store, clock).run(provider)
    assert report.requested == [date(2024, 1, 14)]


def test_run_is_idempotent(emirates, store, emirates_transport, clock) -> None:
    orchestrator = _orchestrator(store, clock)

    first = orchestrator.run(emirates)
    assert first.succeeded == [date(2024, 1, day) for day in range(10, 15)]
    assert first.failed == []
    assert first.persisted.inserted == 5 * 8
    rows = store.count()

    second = orchestrator.run(emirates)
    assert second.is_noop
    assert store.count() == rows
    assert len(emirates_transport.calls) == 5


def test_failed_day_is_skipped_then_retried(emirates_config, store, clock) -> None:
    flaky = FakeTransport(emirates_responder(failing={"2024-01-12"}))
    provider = EmiratesProvider(emirates_config, store, flaky, clock=clock)
    orchestrator = _orchestrator(store, clock)

    report = orchestrator.run(provider)
    assert report.failed == [date(2024, 1, 12)]
    assert len(report.succeeded) == 4
    assert date(2024, 1, 12) not in store.stored_dates("emirates")

    healthy = EmiratesProvider(emirates_config, store, FakeTransport(emirates_responder()), clock=clock)
    retry = orchestrator.run(healthy)
    assert retry.requested == [date(2024, 1, 12)]
    assert retry.succeeded == [date(2024, 1, 12)]
    assert store.latest_rate_date("emirates") == date(2024, 1, 14)


def test_day_without_usable_rates_is_reported_as_failed(emirates_config, store, clock, caplog) -> None:
    healthy = emirates_responder()

    def _respond(url, params):
        if params["date"] == "2024-01-12":
            return emirates_payload(date(2024, 1, 12), {"Atlantean Drachma": "1.0"})
        return healthy(url, params)

    transport = FakeTransport(_respond)
    orchestrator = _orchestrator(store, clock)
    provider = EmiratesProvider(emirates_config, store, transport, clock=clock)

    report = orchestrator.run(provider)
    assert report.failed == [date(2024, 1, 12)]
    assert date(2024, 1, 12) not in report.succeeded

    with caplog.at_level("WARNING", logger="forex_rates.backfill"):
        retry = orchestrator.run(provider)
    assert retry.requested == [date(2024, 1, 12)]
    assert retry.failed == [date(2024, 1, 12)]
    assert "2024-01-12" in caplog.text
    assert len(transport.calls) == 6


def test_stopped_orchestrator_starts_nothing(emirates, store, emirates_transport, clock) -> None:
    orchestrator = _orchestrator(store, clock)
    orchestrator.stop()

    assert orchestrator.stopped
    assert orchestrator.run_all([emirates]) == []
    report = orchestrator.run(emirates)
    assert report.succeeded == [] and report.failed == []
    assert emirates_transport.calls == []


def test_explicit_end_is_capped_at_finalised_day(emirates, store, clock) -> None:
    orchestrator = _orchestrator(store, clock)
    assert orchestrator.run(emirates, end=date(2024, 1, 11)).requested == [date(2024, 1, 10), date(2024, 1, 11)]
    assert orchestrator.run(emirates, end=date(2024, 2, 1)).requested == [
        date(2024, 1, 12),
        date(2024, 1, 13),
        date(2024, 1, 14),
    ]


def test_dispatch_is_spaced_by_random_delay(emirates, store, clock) -> None:
    pauses: list[float] = []
    orchestrator = _orchestrator(store, clock, sleep=pauses.append, rng=random.Random(7))
    orchestrator.run(emirates)
    assert len(pauses) == 4
    assert all(0 <= pause <= 0.5 for pause in pauses)


def test_run_all_skips_disabled_providers(emirates, fixer, store, clock) -> None:
    reports = _orchestrator(store, clock).run_all([fixer, emirates])
    assert [report.provider for report in reports] == ["emirates"]


def test_parallelism_must_be_positive(store) -> None:
    with pytest.raises(ValueError):
        BackfillOrchestrator(store, parallelism=0)


def test_cli_arguments() -> None:
    args = parse_args(["--provider", "emirates", "--provider", "fixer", "--to", "2024-01-31", "--config", "c.yml"])
    assert args.providers == ["emirates", "fixer"]
    assert args.end == "2024-01-31"
    assert args.config_path == "c.yml"
    assert parse_args([]).providers is None
