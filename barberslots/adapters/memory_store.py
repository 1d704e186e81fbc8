"""
In-memory booking store for running without a database.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence

from ..domain.exceptions import SlotConflictError, StorageError
from ..domain.models import BarberSettings, Booking, BookingStatus, Service
from .records import SeedData, load_seed_file

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_shop_data.json"


class MemoryBookingStore:
    """
    Store that keeps services, bookings and settings in dictionaries.

    It mirrors the SQL store's guarantees: transactions are serialized by
    a lock and rolled back on error, and an insert is refused when another
    active booking already holds the same barber, date and start time.
    """

    def __init__(
        self,
        services: Iterable[Service] = (),
        bookings: Iterable[Booking] = (),
        settings: Iterable[BarberSettings] = (),
    ):
        self._services: Dict[str, Service] = {service.id: service for service in services}
        self._bookings: Dict[str, Booking] = {booking.id: booking for booking in bookings}
        self._settings: Dict[str, BarberSettings] = {s.barber_id: s for s in settings}
        self._lock = asyncio.Lock()

    @classmethod
    def from_seed(cls, seed: SeedData) -> "MemoryBookingStore":
        return cls(services=seed.services, bookings=seed.bookings, settings=seed.settings)

    @classmethod
    def from_json(cls, data_file: Optional[Path] = None) -> "MemoryBookingStore":
        """
        Load mock shop data from a JSON file (defaults to mock_shop_data.json).

        A missing default file yields an empty store.
        """
        path = data_file or DEFAULT_DATA_FILE
        if data_file is None and not path.exists():
            return cls()
        return cls.from_seed(load_seed_file(path))

    async def get_services(self, service_ids: Sequence[str]) -> List[Service]:
        return [
            self._services[service_id]
            for service_id in dict.fromkeys(service_ids)
            if service_id in self._services
        ]

    async def get_bookings(
        self,
        barber_id: str,
        date: str,
        statuses: Iterable[BookingStatus],
    ) -> List[Booking]:
        wanted = frozenset(BookingStatus.parse(status) for status in statuses)
        return [
            booking
            for booking in self._bookings.values()
            if booking.barber_id == barber_id
            and booking.date == date
            and booking.status in wanted
        ]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    async def list_bookings(
        self,
        *,
        customer_id: Optional[str] = None,
        barber_id: Optional[str] = None,
        date: Optional[str] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        wanted = None
        if statuses is not None:
            wanted = frozenset(BookingStatus.parse(status) for status in statuses)

        matches = [
            booking
            for booking in self._bookings.values()
            if (customer_id is None or booking.customer_id == customer_id)
            and (barber_id is None or booking.barber_id == barber_id)
            and (date is None or booking.date == date)
            and (wanted is None or booking.status in wanted)
        ]
        return sorted(matches, key=lambda b: (b.date, b.start, b.id))

    async def get_barber_settings(self, barber_id: str) -> Optional[BarberSettings]:
        return self._settings.get(barber_id)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryBookingStore"]:
        async with self._lock:
            snapshot = (dict(self._services), dict(self._bookings), dict(self._settings))
            try:
                yield self
            except BaseException:
                self._services, self._bookings, self._settings = snapshot
                raise

    async def insert_booking(self, booking: Booking) -> Booking:
        if booking.id in self._bookings:
            raise StorageError(f"Duplicate booking id: {booking.id}")

        if booking.is_active and any(
            other.is_active
            and other.barber_id == booking.barber_id
            and other.date == booking.date
            and other.start == booking.start
            for other in self._bookings.values()
        ):
            raise SlotConflictError(
                f"{booking.start} on {booking.date} is already booked "
                f"for barber {booking.barber_id}"
            )

        self._bookings[booking.id] = booking
        return booking

    async def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        if booking is None:
            return None
        updated = booking.with_status(status)
        self._bookings[booking_id] = updated
        return updated

    async def save_barber_settings(self, settings: BarberSettings) -> BarberSettings:
        self._settings[settings.barber_id] = settings
        return settings

    async def upsert_service(self, service: Service) -> Service:
        self._services[service.id] = service
        return service
