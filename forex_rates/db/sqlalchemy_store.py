"""SQLAlchemy powered rate store (SQLite, Postgres, MySQL)."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import (
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
    insert,
    select,
    text,
)
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from forex_rates.db.base_backend import PersistenceResult, RateStore
from forex_rates.errors import StorageError
from forex_rates.models import CurrencyRateRecord, Endpoint
from forex_rates.utils.date_range import DATE_FORMAT, parse_date
from forex_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)

UNIQUE_COLUMNS = ("base_currency", "quoted_currency", "rate_date", "provider", "endpoint")


class Base(DeclarativeBase):
    pass


class CurrencyRate(Base):
    __tablename__ = "currency_rate"
    __table_args__ = (UniqueConstraint(*UNIQUE_COLUMNS, name="uq_currency_rate"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    quoted_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    # Kept as text so the calendar day never drifts with the server time zone.
    rate_date: Mapped[str] = mapped_column(String(10), nullable=False)
    request_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    provider_generated_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(16), nullable=False)


class SQLAlchemyRateStore(RateStore):
    """Rate store backed by any SQLAlchemy engine URL."""

    def __init__(self, url: str, *, engine: Engine | None = None, echo: bool = False) -> None:
        self.url = url
        self._engine_instance = engine
        self._echo = echo
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine:
        if self._engine_instance is None:
            connect_args: dict[str, Any] = {}
            if self.url.startswith("sqlite"):
                # Live requests and backfill workers share the engine across threads.
                connect_args = {"check_same_thread": False, "timeout": 30}
            self._engine_instance = create_engine(
                self.url, echo=self._echo, future=True, connect_args=connect_args
            )
        return self._engine_instance

    def _sessions(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        return self._session_factory

    def ensure_schema(self) -> None:
        try:
            with self.engine.begin() as connection:
                LOGGER.info("Ensuring currency_rate schema exists")
                connection.execute(text("SELECT 1"))
                Base.metadata.create_all(connection)
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to prepare rate store: {exc}") from exc

    def _insert_ignore(self):
        table = CurrencyRate.__table__
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            return sqlite_insert(table).on_conflict_do_nothing(index_elements=list(UNIQUE_COLUMNS))
        if dialect == "postgresql":
            return postgresql_insert(table).on_conflict_do_nothing(constraint="uq_currency_rate")
        if dialect in {"mysql", "mariadb"}:
            return insert(table).prefix_with("IGNORE")
        raise StorageError(f"Unsupported database dialect: {dialect}")

    def insert_rates(self, rows: Sequence[CurrencyRateRecord]) -> PersistenceResult:
        result = PersistenceResult()
        if not rows:
            return result
        statement = self._insert_ignore()
        try:
            with self._sessions()() as session:
                for row in rows:
                    outcome = session.execute(statement, _row_params(row))
                    if outcome.rowcount:
                        result.inserted += 1
                    else:
                        result.skipped += 1
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to store currency rates: {exc}") from exc
        LOGGER.debug("Inserted %s rows, skipped %s existing rows", result.inserted, result.skipped)
        return result

    def fetch_rates(
        self,
        *,
        provider: str,
        base_currency: str,
        quoted_currencies: Iterable[str],
        rate_date: date,
        endpoint: Endpoint = Endpoint.HISTORICAL,
    ) -> list[CurrencyRateRecord]:
        quoted = list(quoted_currencies)
        if not quoted:
            return []
        stmt = (
            select(CurrencyRate)
            .where(CurrencyRate.provider == provider)
            .where(CurrencyRate.endpoint == Endpoint(endpoint).value)
            .where(CurrencyRate.base_currency == base_currency)
            .where(CurrencyRate.quoted_currency.in_(quoted))
            .where(CurrencyRate.rate_date == rate_date.strftime(DATE_FORMAT))
            .order_by(CurrencyRate.quoted_currency)
        )
        try:
            with self._sessions()() as session:
                return [_to_record(model) for model in session.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to read currency rates: {exc}") from exc

    def latest_rate_date(
        self, provider: str, endpoint: Endpoint = Endpoint.HISTORICAL
    ) -> date | None:
        stmt = (
            select(func.max(CurrencyRate.rate_date))
            .where(CurrencyRate.provider == provider)
            .where(CurrencyRate.endpoint == Endpoint(endpoint).value)
        )
        try:
            with self._sessions()() as session:
                latest = session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to read latest rate date: {exc}") from exc
        return parse_date(latest) if latest else None

    def stored_dates(
        self,
        provider: str,
        endpoint: Endpoint = Endpoint.HISTORICAL,
        *,
        start: date | None = None,
        end: date | None = None,
    ) -> set[date]:
        stmt = (
            select(CurrencyRate.rate_date)
            .distinct()
            .where(CurrencyRate.provider == provider)
            .where(CurrencyRate.endpoint == Endpoint(endpoint).value)
        )
        if start is not None:
            stmt = stmt.where(CurrencyRate.rate_date >= start.strftime(DATE_FORMAT))
        if end is not None:
            stmt = stmt.where(CurrencyRate.rate_date <= end.strftime(DATE_FORMAT))
        try:
            with self._sessions()() as session:
                return {parse_date(value) for value in session.execute(stmt).scalars()}
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to read stored rate dates: {exc}") from exc

    def count(self, provider: str | None = None) -> int:
        stmt = select(func.count()).select_from(CurrencyRate)
        if provider is not None:
            stmt = stmt.where(CurrencyRate.provider == provider)
        try:
            with self._sessions()() as session:
                return int(session.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to count currency rates: {exc}") from exc

    def close(self) -> None:
        if self._engine_instance is not None:
            self._engine_instance.dispose()

    def __enter__(self) -> "SQLAlchemyRateStore":  # pragma: no cover - trivial
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - trivial
        self.close()


def _row_params(row: CurrencyRateRecord) -> dict[str, object]:
    return {
        "base_currency": row.base_currency,
        "quoted_currency": row.quoted_currency,
        "value": row.value,
        "rate_date": row.rate_date.strftime(DATE_FORMAT),
        "request_time": _as_utc(row.request_time),
        "provider_generated_time": _as_utc(row.provider_generated_time),
        "provider": row.provider,
        "endpoint": Endpoint(row.endpoint).value,
    }


def _to_record(model: CurrencyRate) -> CurrencyRateRecord:
    return CurrencyRateRecord(
        provider=model.provider,
        base_currency=model.base_currency,
        quoted_currency=model.quoted_currency,
        value=float(model.value),
        rate_date=parse_date(model.rate_date),
        provider_generated_time=_as_utc(model.provider_generated_time),
        request_time=_as_utc(model.request_time),
        endpoint=Endpoint(model.endpoint),
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["Base", "CurrencyRate", "SQLAlchemyRateStore", "UNIQUE_COLUMNS"]
