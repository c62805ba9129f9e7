"""Calendar helpers: ISO parsing, inclusive day ranges and provider-local days."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator
from zoneinfo import ZoneInfo

DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class DateRange:
    """Container representing a closed date range."""

    start: date
    end: date

    def __iter__(self) -> Iterator[date]:
        return iter_days(self.start, self.end)

    def __len__(self) -> int:
        return max((self.end - self.start).days + 1, 0)

    def is_empty(self) -> bool:
        return self.start > self.end


def parse_date(value: str | date) -> date:
    """Parse a date string in ISO format to :class:`date`."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value, DATE_FORMAT).date()


def parse_time_of_day(value: str) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a naive :class:`time`."""

    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time of day: {value!r}")


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from ``start`` to ``end`` inclusive.

    An inverted window yields nothing.
    """

    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_today(location: ZoneInfo, now: datetime | None = None) -> date:
    """Return the calendar day in ``location`` at ``now``."""

    moment = now or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(location).date()


def finalized_date(location: ZoneInfo, generated_at: time, now: datetime | None = None) -> date:
    """Return the most recent day whose rates are final in ``location``.

    The generation time is a single instant of the provider-local day: from
    that instant onwards today's table is final, before it only yesterday's is.
    """

    moment = now or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local_moment = moment.astimezone(location)
    boundary = datetime.combine(local_moment.date(), generated_at, tzinfo=location)
    if local_moment >= boundary:
        return local_moment.date()
    return local_moment.date() - timedelta(days=1)


__all__ = [
    "DATE_FORMAT",
    "DateRange",
    "finalized_date",
    "iter_days",
    "local_today",
    "parse_date",
    "parse_time_of_day",
    "utc_now",
]
