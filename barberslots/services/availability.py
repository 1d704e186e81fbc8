"""
Application services for computing a barber's availability.

The service fetches bookings, settings and service durations through a
store protocol and delegates the actual slot calculation to the
domain-level ``SlotCalculator``. Any store matching the protocol can be
plugged in: the SQL adapter in production, the in-memory adapter in mock
mode and in tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncContextManager, Dict, Iterable, List, Optional, Protocol, Sequence, Union

from ..domain.exceptions import InvalidRequestError
from ..domain.models import (
    ACTIVE_STATUSES,
    BarberSettings,
    BookedSlot,
    Booking,
    BookingStatus,
    Service,
    TimeOfDay,
    TimeRange,
    parse_booking_date,
)
from ..domain.slot_calculator import Occupancy, SlotCalculator, has_conflict

logger = logging.getLogger(__name__)

ServiceIds = Union[str, Iterable[str], None]


class BookingReader(Protocol):
    """Read side of the persistence collaborator."""

    async def get_services(self, service_ids: Sequence[str]) -> List[Service]:
        """Return the services matching the ids in a single round trip."""

    async def get_bookings(
        self,
        barber_id: str,
        date: str,
        statuses: Iterable[BookingStatus],
    ) -> List[Booking]:
        """Return the barber's bookings on a date with one of the statuses."""

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Return a booking by id, or None."""

    async def list_bookings(
        self,
        *,
        customer_id: Optional[str] = None,
        barber_id: Optional[str] = None,
        date: Optional[str] = None,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> List[Booking]:
        """Return bookings matching every given filter, ordered by date and start."""

    async def get_barber_settings(self, barber_id: str) -> Optional[BarberSettings]:
        """Return the barber's settings row, or None if there is none."""


class BookingWriter(BookingReader, Protocol):
    """Reads and writes available inside a store transaction."""

    async def insert_booking(self, booking: Booking) -> Booking:
        """Insert a booking; raise SlotConflictError if storage rejects it."""

    async def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]:
        """Set a booking's status and return the updated booking."""

    async def save_barber_settings(self, settings: BarberSettings) -> BarberSettings:
        """Insert or replace the barber's settings."""

    async def upsert_service(self, service: Service) -> Service:
        """Insert or replace a catalog service."""


class BookingStoreProtocol(BookingReader, Protocol):
    """Protocol describing the store behaviour needed by the services."""

    def transaction(self) -> AsyncContextManager[BookingWriter]:
        """Open a transaction in which a read-check-write sequence is serialized."""


def require_id(value: Optional[str], name: str) -> str:
    """Reject a missing identifier before any store round trip."""
    if value is None or not str(value).strip():
        raise InvalidRequestError(f"{name} is required")
    return str(value).strip()


def normalize_service_ids(service_ids: ServiceIds) -> List[str]:
    """
    Normalise requested service ids.

    Accepts a list or a comma-separated string ("svc_1,svc_2"); blank
    entries are dropped and duplicates collapse to their first occurrence.
    """
    if service_ids is None:
        return []
    if isinstance(service_ids, str):
        service_ids = service_ids.split(",")

    cleaned = (str(service_id).strip() for service_id in service_ids)
    return list(dict.fromkeys(service_id for service_id in cleaned if service_id))


def as_time_of_day(value: Union[str, TimeOfDay, None]) -> TimeOfDay:
    if isinstance(value, TimeOfDay):
        return value
    if value is None:
        raise InvalidRequestError("start_time is required")
    return TimeOfDay.parse(value)


class AvailabilityService:
    """
    Answers "when can this barber take an appointment?".

    Stateless apart from its injected collaborators, so one instance can
    serve any number of independent requests.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        slot_calculator: SlotCalculator,
        timezone: str = "Europe/Berlin",
    ) -> None:
        self._store = store
        self._slot_calculator = slot_calculator
        self._timezone = timezone

    @property
    def slot_calculator(self) -> SlotCalculator:
        return self._slot_calculator

    def parse_date(self, date: Optional[str]) -> str:
        """Validate a calendar-day key in the shop timezone."""
        return parse_booking_date(date, self._timezone)

    async def resolve_services(
        self,
        service_ids: Sequence[str],
        reader: Optional[BookingReader] = None,
    ) -> Dict[str, Service]:
        """
        Look up a set of services with one batched query.

        Unknown ids are left out of the mapping; they are logged, not raised,
        since the catalog may change under existing bookings.
        """
        unique_ids = list(dict.fromkeys(service_ids))
        if not unique_ids:
            return {}

        services = await (reader or self._store).get_services(unique_ids)
        found = {service.id: service for service in services}

        missing = [service_id for service_id in unique_ids if service_id not in found]
        if missing:
            logger.warning(
                "Unknown service id(s) counted as 0 minutes: %s", ", ".join(missing)
            )

        return found

    async def resolve_durations(
        self,
        service_ids: Sequence[str],
        reader: Optional[BookingReader] = None,
    ) -> Dict[str, int]:
        """Durations in minutes keyed by service id (unknown ids absent)."""
        services = await self.resolve_services(service_ids, reader)
        return {service_id: service.effective_duration for service_id, service in services.items()}

    async def resolve_total_duration(
        self,
        service_ids: ServiceIds,
        reader: Optional[BookingReader] = None,
    ) -> int:
        """Total minutes for the requested services, or the default if none."""
        ids = normalize_service_ids(service_ids)
        durations = await self.resolve_durations(ids, reader)
        return self._slot_calculator.total_duration(ids, durations)

    async def booked_ranges(
        self,
        barber_id: str,
        date: str,
        reader: Optional[BookingReader] = None,
    ) -> List[TimeRange]:
        """
        Ranges occupied by the barber's active bookings on a date.

        Durations for all bookings are resolved in one batched lookup.
        """
        bookings = await (reader or self._store).get_bookings(barber_id, date, ACTIVE_STATUSES)

        referenced_ids = [
            service_id
            for booking in bookings
            for service_id in booking.service_ids
        ]
        durations = await self.resolve_durations(referenced_ids, reader)

        return self._slot_calculator.occupied_ranges(bookings, durations)

    async def build_occupancy(
        self,
        barber_id: str,
        date: str,
        reader: Optional[BookingReader] = None,
    ) -> Occupancy:
        """Collect booked ranges and hidden hours for a barber's day."""
        reader = reader or self._store
        ranges = await self.booked_ranges(barber_id, date, reader)

        settings = await reader.get_barber_settings(barber_id)
        hidden_hours = settings.hidden_hours if settings else frozenset()

        return Occupancy(booked_ranges=tuple(ranges), hidden_hours=hidden_hours)

    async def get_available_slots(
        self,
        barber_id: Optional[str],
        date: Optional[str],
        service_ids: ServiceIds = None,
    ) -> List[str]:
        """
        Ordered list of bookable start times, formatted like "9:00 AM".
        """
        barber_id = require_id(barber_id, "barber_id")
        day = self.parse_date(date)
        ids = normalize_service_ids(service_ids)

        total_duration, occupancy = await asyncio.gather(
            self.resolve_total_duration(ids),
            self.build_occupancy(barber_id, day),
        )

        slots = self._slot_calculator.find_available_slots(
            total_duration=total_duration,
            booked_ranges=occupancy.booked_ranges,
            hidden_hours=occupancy.hidden_hours,
        )
        logger.debug(
            "%d slot(s) for barber %s on %s (%d min)",
            len(slots), barber_id, day, total_duration,
        )

        return [slot.format() for slot in slots]

    async def get_booked_slots(
        self,
        barber_id: Optional[str],
        date: Optional[str],
    ) -> List[BookedSlot]:
        """Start times held by active bookings, earliest first."""
        barber_id = require_id(barber_id, "barber_id")
        day = self.parse_date(date)

        bookings = await self._store.get_bookings(barber_id, day, ACTIVE_STATUSES)

        return [
            BookedSlot(start=booking.start, status=booking.status)
            for booking in sorted(bookings, key=lambda b: b.start)
        ]

    async def proposed_range(
        self,
        start: TimeOfDay,
        service_ids: ServiceIds,
        reader: Optional[BookingReader] = None,
    ) -> TimeRange:
        """Range a new booking would occupy."""
        duration = await self.resolve_total_duration(service_ids, reader)
        return TimeRange.starting_at(start, duration)

    async def overlaps_active_booking(
        self,
        barber_id: str,
        date: str,
        proposed: TimeRange,
        reader: Optional[BookingReader] = None,
    ) -> bool:
        """Full overlap test against every active booking of the day."""
        ranges = await self.booked_ranges(barber_id, date, reader)
        return has_conflict(proposed, ranges)

    async def check_conflict(
        self,
        barber_id: Optional[str],
        date: Optional[str],
        start_time: Union[str, TimeOfDay, None],
        service_ids: ServiceIds,
    ) -> bool:
        """
        Would a booking at `start_time` for these services collide?

        Returns True when the proposed range overlaps (or shares its start
        with) any active booking of that barber on that day.
        """
        barber_id = require_id(barber_id, "barber_id")
        day = self.parse_date(date)
        start = as_time_of_day(start_time)

        proposed = await self.proposed_range(start, service_ids)
        return await self.overlaps_active_booking(barber_id, day, proposed)
