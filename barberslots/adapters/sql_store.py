"""
Relational booking store on SQLAlchemy's asyncio extension.

Two storage-level guards keep a barber from being double booked:

* every SQLite transaction starts with BEGIN IMMEDIATE (other engines run
  SERIALIZABLE), so "check for overlaps, then insert" has a single writer;
* a partial unique index allows only one active booking per barber, date
  and start time, even for writers that skip the overlap check.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String, Text, event, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from ..domain.exceptions import SlotConflictError, StorageError
from ..domain.models import BarberSettings, Booking, BookingStatus, Service, TimeOfDay
from .records import SeedData, parse_hidden_hours

logger = logging.getLogger(__name__)

Base = declarative_base()

ACTIVE_STATUS_CLAUSE = "status IN ('pending', 'confirmed')"


class ServiceRow(Base):
    """Catalog service"""

    __tablename__ = "services"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    duration = Column(Integer, nullable=True)  # Minutes
    price = Column(Float, nullable=False, default=0.0)


class BookingRow(Base):
    """Booking; its occupied interval is derived, never stored"""

    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True)
    barber_id = Column(String(64), nullable=False)
    customer_id = Column(String(64), nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD, shop-local
    start_minutes = Column(Integer, nullable=False)  # Minutes since midnight
    service_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, index=True)
    total_price = Column(Float, nullable=False, default=0.0)
    customer_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_bookings_barber_date", "barber_id", "date"),
        Index(
            "uq_bookings_active_start",
            "barber_id",
            "date",
            "start_minutes",
            unique=True,
            sqlite_where=text(ACTIVE_STATUS_CLAUSE),
            postgresql_where=text(ACTIVE_STATUS_CLAUSE),
        ),
    )


class BarberSettingsRow(Base):
    """Per-barber hidden hours, stored in the wire format"""

    __tablename__ = "barber_settings"

    barber_id = Column(String(64), primary_key=True)
    hidden_hours = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


def _to_service(row: ServiceRow) -> Service:
    return Service(
        id=row.id,
        name=row.name or "",
        duration=row.duration,
        price=row.price or 0.0,
    )


def _to_booking(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        barber_id=row.barber_id,
        customer_id=row.customer_id,
        date=row.date,
        start=TimeOfDay(row.start_minutes),
        service_ids=tuple(row.service_ids or ()),
        status=BookingStatus.parse(row.status),
        total_price=row.total_price or 0.0,
        customer_name=row.customer_name,
        notes=row.notes,
    )


def _to_settings(row: BarberSettingsRow) -> BarberSettings:
    return BarberSettings(
        barber_id=row.barber_id,
        hidden_hours=parse_hidden_hours(row.hidden_hours or (), row.barber_id),
    )


def _serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock when it begins."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        # Stop the driver from emitting its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class SqlTransaction:
    """Reads and writes bound to one open session and transaction."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_services(self, service_ids: Sequence[str]) -> List[Service]:
        ids = list(dict.fromkeys(service_ids))
        if not ids:
            return []
        result = await self._session.execute(
            select(ServiceRow).where(ServiceRow.id.in_(ids))
        )
        return [_to_service(row) for row in result.scalars()]

    async def get_bookings(
        self,
        barber_id: str,
        date: str,
        statuses: Iterable[BookingStatus],
    ) -> List[Booking]:
        values = sorted({BookingStatus.parse(status).value for status in statuses})
        result = await self._session.execute(
            select(BookingRow)
            .where(
                BookingRow.barber_id == barber_id,
                BookingRow.date == date,
                BookingRow.status.in_(values),
            )
            .order_by(BookingRow.start_minutes)
        )
        return [_to_booking(row) for row in result.scalars()]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        row = await self._session.get(BookingRow, booking_id)
        return _to_booking(row) if row else None

    async def list_bookings(
        self,
        *,
        customer_id: Optional[str] = None,
        barber_id: Optional[str] = None,
        date: Optional[str] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        query = select(BookingRow)
        if customer_id is not None:
            query = query.where(BookingRow.customer_id == customer_id)
        if barber_id is not None:
            query = query.where(BookingRow.barber_id == barber_id)
        if date is not None:
            query = query.where(BookingRow.date == date)
        if statuses is not None:
            values = sorted({BookingStatus.parse(status).value for status in statuses})
            query = query.where(BookingRow.status.in_(values))

        result = await self._session.execute(
            query.order_by(BookingRow.date, BookingRow.start_minutes, BookingRow.id)
        )
        return [_to_booking(row) for row in result.scalars()]

    async def get_barber_settings(self, barber_id: str) -> Optional[BarberSettings]:
        row = await self._session.get(BarberSettingsRow, barber_id)
        return _to_settings(row) if row else None

    async def insert_booking(self, booking: Booking) -> Booking:
        self._session.add(
            BookingRow(
                id=booking.id,
                barber_id=booking.barber_id,
                customer_id=booking.customer_id,
                date=booking.date,
                start_minutes=booking.start.minutes,
                service_ids=list(booking.service_ids),
                status=booking.status.value,
                total_price=booking.total_price,
                customer_name=booking.customer_name,
                notes=booking.notes,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise SlotConflictError(
                f"{booking.start} on {booking.date} is already booked "
                f"for barber {booking.barber_id}"
            ) from exc
        return booking

    async def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]:
        row = await self._session.get(BookingRow, booking_id)
        if row is None:
            return None
        row.status = status.value
        await self._session.flush()
        return _to_booking(row)

    async def save_barber_settings(self, settings: BarberSettings) -> BarberSettings:
        await self._session.merge(
            BarberSettingsRow(
                barber_id=settings.barber_id,
                hidden_hours=settings.hidden_labels(),
            )
        )
        await self._session.flush()
        return settings

    async def upsert_service(self, service: Service) -> Service:
        await self._session.merge(
            ServiceRow(
                id=service.id,
                name=service.name,
                duration=service.duration,
                price=service.price,
            )
        )
        await self._session.flush()
        return service


class SqlBookingStore:
    """
    Booking store backed by a relational database.

    Each read runs in its own short transaction; `transaction()` exposes
    a session-bound writer for read-check-write sequences.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SqlBookingStore":
        """
        Create a store for a database URL, e.g. "sqlite+aiosqlite:///barberslots.db".

        Use a file-backed SQLite database: an in-memory one shares a single
        connection, which cannot hold two transactions at once.
        """
        if database_url.startswith("sqlite"):
            engine = create_async_engine(database_url, echo=echo)
            _serialize_sqlite_transactions(engine)
        else:
            engine = create_async_engine(database_url, echo=echo, isolation_level="SERIALIZABLE")
        return cls(engine)

    async def init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not create schema: {exc}") from exc

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlTransaction]:
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    yield SqlTransaction(session)
        except SQLAlchemyError as exc:
            logger.error("Database transaction failed: %s", exc)
            raise StorageError(f"Database operation failed: {exc}") from exc

    async def get_services(self, service_ids: Sequence[str]) -> List[Service]:
        async with self.transaction() as tx:
            return await tx.get_services(service_ids)

    async def get_bookings(
        self,
        barber_id: str,
        date: str,
        statuses: Iterable[BookingStatus],
    ) -> List[Booking]:
        async with self.transaction() as tx:
            return await tx.get_bookings(barber_id, date, statuses)

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        async with self.transaction() as tx:
            return await tx.get_booking(booking_id)

    async def list_bookings(
        self,
        *,
        customer_id: Optional[str] = None,
        barber_id: Optional[str] = None,
        date: Optional[str] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        async with self.transaction() as tx:
            return await tx.list_bookings(
                customer_id=customer_id, barber_id=barber_id, date=date, statuses=statuses
            )

    async def get_barber_settings(self, barber_id: str) -> Optional[BarberSettings]:
        async with self.transaction() as tx:
            return await tx.get_barber_settings(barber_id)

    async def seed(self, data: SeedData) -> None:
        """Load services, settings and bookings in one transaction."""
        async with self.transaction() as tx:
            for service in data.services:
                await tx.upsert_service(service)
            for settings in data.settings:
                await tx.save_barber_settings(settings)
            for booking in data.bookings:
                await tx.insert_booking(booking)
