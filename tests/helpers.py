"""
Shared builders and doubles for the test suite.
"""

from typing import List, Sequence, Tuple

from barberslots.adapters.memory_store import MemoryBookingStore
from barberslots.domain.models import Booking, BookingStatus, Service, TimeOfDay, WorkingHours
from barberslots.domain.slot_calculator import SlotCalculator
from barberslots.services.availability import AvailabilityService
from barberslots.services.bookings import BookingService

DAY = "2024-11-25"

SERVICES = [
    Service(id="svc_cut", name="Haircut", duration=30, price=25.0),
    Service(id="svc_beard", name="Beard Trim", duration=15, price=12.0),
    Service(id="svc_fade", name="Skin Fade", duration=45, price=32.0),
    Service(id="svc_hour", name="Full Package", duration=60, price=55.0),
    Service(id="svc_color", name="Colouring", duration=90, price=70.0),
    Service(id="svc_free", name="Consultation", duration=None, price=0.0),
]


def make_booking(
    booking_id: str,
    start: str,
    service_ids: Sequence[str] = ("svc_hour",),
    status: BookingStatus = BookingStatus.CONFIRMED,
    barber_id: str = "barber_1",
    date: str = DAY,
    customer_id: str = "cust_1",
) -> Booking:
    return Booking(
        id=booking_id,
        barber_id=barber_id,
        customer_id=customer_id,
        date=date,
        start=TimeOfDay.parse(start),
        service_ids=tuple(service_ids),
        status=status,
    )


def default_calculator() -> SlotCalculator:
    working_hours = WorkingHours(
        open_time=TimeOfDay.from_hm(9, 0),
        close_time=TimeOfDay.from_hm(18, 0),
        step_minutes=15,
    )
    return SlotCalculator(working_hours=working_hours, default_duration_minutes=60)


class CountingStore:
    """Wraps a store and records every call it serves."""

    def __init__(self, inner):
        self._inner = inner
        self.calls: List[Tuple] = []

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def get_services(self, service_ids):
        self.calls.append(("get_services", tuple(service_ids)))
        return await self._inner.get_services(service_ids)

    async def get_bookings(self, barber_id, date, statuses):
        self.calls.append(("get_bookings", barber_id, date))
        return await self._inner.get_bookings(barber_id, date, statuses)

    async def get_booking(self, booking_id):
        self.calls.append(("get_booking", booking_id))
        return await self._inner.get_booking(booking_id)

    async def list_bookings(self, **filters):
        self.calls.append(("list_bookings", tuple(sorted(filters))))
        return await self._inner.list_bookings(**filters)

    async def get_barber_settings(self, barber_id):
        self.calls.append(("get_barber_settings", barber_id))
        return await self._inner.get_barber_settings(barber_id)

    def transaction(self):
        self.calls.append(("transaction",))
        return self._inner.transaction()


def build_services(store) -> Tuple[AvailabilityService, BookingService]:
    availability = AvailabilityService(
        store=store,
        slot_calculator=default_calculator(),
        timezone="Europe/Berlin",
    )
    return availability, BookingService(store=store, availability=availability)


def memory_store(bookings=(), settings=()) -> MemoryBookingStore:
    return MemoryBookingStore(services=SERVICES, bookings=bookings, settings=settings)
