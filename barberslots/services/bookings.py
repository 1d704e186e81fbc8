"""
Booking lifecycle: creating bookings, moving them through their
statuses, and maintaining a barber's hidden hours.

Creation runs the conflict check and the insert inside one store
transaction, so two requests racing for the same time cannot both win.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, List, Optional, Union

from ..domain.exceptions import (
    BookingNotFoundError,
    InvalidRequestError,
    InvalidTransitionError,
    PermissionDeniedError,
    SlotConflictError,
)
from ..domain.models import (
    BarberSettings,
    Booking,
    BookingStatus,
    Caller,
    Role,
    TimeOfDay,
    TimeRange,
)
from .availability import (
    AvailabilityService,
    BookingStoreProtocol,
    ServiceIds,
    as_time_of_day,
    normalize_service_ids,
    require_id,
)

logger = logging.getLogger(__name__)


SCHEDULE_STATUSES = tuple(status for status in BookingStatus if status is not BookingStatus.CANCELLED)


def generate_booking_id() -> str:
    """Generate a prefixed booking id."""
    return f"bkg_{uuid.uuid4().hex[:12]}"


def newest_first(bookings: Iterable[Booking]) -> List[Booking]:
    return sorted(bookings, key=lambda b: (b.date, b.start), reverse=True)


class BookingService:
    """
    Orchestrates booking writes on top of the availability rules.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        availability: AvailabilityService,
    ) -> None:
        self._store = store
        self._availability = availability

    async def create_booking(
        self,
        caller: Caller,
        *,
        barber_id: Optional[str],
        date: Optional[str],
        start_time: Union[str, TimeOfDay, None],
        service_ids: ServiceIds,
        customer_id: Optional[str] = None,
        status: Union[str, BookingStatus] = BookingStatus.CONFIRMED,
        customer_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Create a booking if its whole range is free.

        Raises:
            InvalidRequestError: Missing/malformed input, zero total duration
                or outside working hours
            PermissionDeniedError: A customer booking on someone else's behalf
            SlotConflictError: The range overlaps an active booking
        """
        barber_id = require_id(barber_id, "barber_id")
        day = self._availability.parse_date(date)
        start = as_time_of_day(start_time)

        ids = normalize_service_ids(service_ids)
        if not ids:
            raise InvalidRequestError("At least one service is required")

        initial_status = BookingStatus.parse(status)
        if not initial_status.is_active:
            raise InvalidRequestError(
                f"New bookings must be pending or confirmed, got {initial_status.value}"
            )

        customer_id = self._resolve_customer(caller, customer_id)
        calculator = self._availability.slot_calculator

        async with self._store.transaction() as tx:
            services = await self._availability.resolve_services(ids, tx)
            durations = {sid: service.effective_duration for sid, service in services.items()}
            proposed = TimeRange.starting_at(start, calculator.total_duration(ids, durations))

            if proposed.duration_minutes() == 0:
                raise InvalidRequestError(
                    f"Services {', '.join(ids)} add up to 0 minutes; nothing to book"
                )

            if not calculator.fits_working_hours(proposed):
                raise InvalidRequestError(f"{proposed} is outside working hours")

            if await self._availability.overlaps_active_booking(barber_id, day, proposed, tx):
                raise SlotConflictError(
                    f"{start} on {day} is not available for barber {barber_id}. "
                    "Please pick another time."
                )

            booking = Booking(
                id=generate_booking_id(),
                barber_id=barber_id,
                customer_id=customer_id,
                date=day,
                start=start,
                service_ids=tuple(ids),
                status=initial_status,
                total_price=round(sum(service.price for service in services.values()), 2),
                customer_name=customer_name,
                notes=notes,
            )
            created = await tx.insert_booking(booking)

        logger.info(
            "Created booking %s for barber %s on %s at %s (%s)",
            created.id, barber_id, day, start, proposed,
        )
        return created

    async def update_booking_status(
        self,
        caller: Caller,
        booking_id: Optional[str],
        new_status: Union[str, BookingStatus],
    ) -> Booking:
        """
        Move a booking forward in its lifecycle.

        Raises:
            BookingNotFoundError: Unknown booking id
            PermissionDeniedError: Caller may not make this change
            InvalidTransitionError: Backward, repeated or terminal-state move
        """
        booking_id = require_id(booking_id, "booking_id")
        target = BookingStatus.parse(new_status)

        async with self._store.transaction() as tx:
            booking = await tx.get_booking(booking_id)
            if booking is None:
                raise BookingNotFoundError(f"Booking not found: {booking_id}")

            self._authorize_transition(caller, booking, target)

            if not booking.status.can_transition_to(target):
                raise InvalidTransitionError(
                    f"Cannot move booking {booking_id} from "
                    f"{booking.status.value} to {target.value}"
                )

            updated = await tx.update_booking_status(booking_id, target)
            if updated is None:
                raise BookingNotFoundError(f"Booking not found: {booking_id}")

        logger.info(
            "Booking %s: %s -> %s by %s",
            booking_id, booking.status.value, target.value, caller.user_id,
        )
        return updated

    async def confirm_booking(self, caller: Caller, booking_id: str) -> Booking:
        return await self.update_booking_status(caller, booking_id, BookingStatus.CONFIRMED)

    async def complete_booking(self, caller: Caller, booking_id: str) -> Booking:
        return await self.update_booking_status(caller, booking_id, BookingStatus.COMPLETED)

    async def cancel_booking(self, caller: Caller, booking_id: str) -> Booking:
        return await self.update_booking_status(caller, booking_id, BookingStatus.CANCELLED)

    async def set_hidden_hours(
        self,
        caller: Caller,
        barber_id: Optional[str],
        hidden_hours: Iterable[Union[str, TimeOfDay]],
    ) -> BarberSettings:
        """Replace the start times a barber has blocked out."""
        barber_id = require_id(barber_id, "barber_id")
        if not caller.acts_for_barber(barber_id):
            raise PermissionDeniedError("Only the barber or an admin can change hidden hours")

        settings = BarberSettings(
            barber_id=barber_id,
            hidden_hours=frozenset(as_time_of_day(value) for value in hidden_hours),
        )

        async with self._store.transaction() as tx:
            saved = await tx.save_barber_settings(settings)

        logger.info("Barber %s hid %d start time(s)", barber_id, len(saved.hidden_hours))
        return saved

    async def get_hidden_hours(self, barber_id: Optional[str]) -> List[str]:
        barber_id = require_id(barber_id, "barber_id")
        settings = await self._store.get_barber_settings(barber_id)
        return settings.hidden_labels() if settings else []

    async def list_customer_bookings(
        self,
        caller: Caller,
        customer_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        A customer's bookings in every status, newest first.

        Customers see only their own; admins may name any customer.
        """
        customer_id = require_id(customer_id or caller.user_id, "customer_id")
        if customer_id != caller.user_id and not caller.is_admin:
            raise PermissionDeniedError("Customers can only list their own bookings")

        bookings = await self._store.list_bookings(customer_id=customer_id)
        return newest_first(bookings)

    async def list_barber_schedule(
        self,
        caller: Caller,
        barber_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> List[Booking]:
        """
        A barber's bookings that are not cancelled, earliest first.

        Limited to one day when `date` is given. Barber callers default
        to their own schedule.
        """
        barber_id = require_id(barber_id or caller.barber_id, "barber_id")
        day = self._availability.parse_date(date) if date is not None else None
        if not caller.acts_for_barber(barber_id):
            raise PermissionDeniedError("Only the barber or an admin can view this schedule")

        return await self._store.list_bookings(
            barber_id=barber_id, date=day, statuses=SCHEDULE_STATUSES
        )

    async def list_bookings(
        self,
        caller: Caller,
        *,
        status: Union[str, BookingStatus, None] = None,
        barber_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> List[Booking]:
        """Every booking in the shop, newest first, optionally filtered. Admins only."""
        statuses = [BookingStatus.parse(status)] if status else None
        barber_id = require_id(barber_id, "barber_id") if barber_id is not None else None
        day = self._availability.parse_date(date) if date is not None else None
        if not caller.is_admin:
            raise PermissionDeniedError("Only admins can list all bookings")

        bookings = await self._store.list_bookings(barber_id=barber_id, date=day, statuses=statuses)
        return newest_first(bookings)

    @staticmethod
    def _resolve_customer(caller: Caller, customer_id: Optional[str]) -> str:
        """Customers book for themselves; staff may book for anyone."""
        if caller.role is Role.CUSTOMER:
            if customer_id and customer_id != caller.user_id:
                raise PermissionDeniedError("Customers can only book for themselves")
            return caller.user_id
        return customer_id or caller.user_id

    @staticmethod
    def _authorize_transition(caller: Caller, booking: Booking, target: BookingStatus) -> None:
        if caller.acts_for_barber(booking.barber_id):
            return
        if caller.user_id == booking.customer_id and target is BookingStatus.CANCELLED:
            return
        raise PermissionDeniedError(
            f"User {caller.user_id} may not set booking {booking.id} to {target.value}"
        )
