"""
Core business logic for calculating bookable start times.

This is the heart of the application - pure domain logic without any
external dependencies (no database, no I/O). The service layer fetches
bookings, settings and service durations and hands them in here.
"""

from dataclasses import dataclass
from typing import AbstractSet, FrozenSet, Iterable, Iterator, List, Mapping, Sequence, Tuple

from .models import Booking, TimeOfDay, TimeRange, WorkingHours

DEFAULT_DURATION_MINUTES = 60


def sum_durations(service_ids: Iterable[str], durations: Mapping[str, int]) -> int:
    """Sum the durations of the given services. Unknown ids count as 0."""
    return sum(durations.get(service_id, 0) for service_id in service_ids)


def has_conflict(proposed: TimeRange, booked_ranges: Iterable[TimeRange]) -> bool:
    """
    Check a proposed range against every occupied range.

    Half-open overlap test, plus a same-start test so zero-length ranges
    still collide with a booking holding that exact start time.
    """
    return any(
        proposed.overlaps(booked) or proposed.start == booked.start
        for booked in booked_ranges
    )


@dataclass(frozen=True)
class Occupancy:
    """What already blocks a barber's day."""
    booked_ranges: Tuple[TimeRange, ...] = ()
    hidden_hours: FrozenSet[TimeOfDay] = frozenset()


class SlotCalculator:
    """
    Calculates bookable start times for one barber on one day.

    Algorithm:
    1. Sum the requested services' durations (default when none requested)
    2. Turn every active booking into a half-open range [start, start + duration)
    3. Walk the working day in fixed steps and keep each start whose range
       ends by closing time, is not hidden, and overlaps no booked range
    4. Return the starts in ascending order (generation order)
    """

    def __init__(
        self,
        working_hours: WorkingHours,
        default_duration_minutes: int = DEFAULT_DURATION_MINUTES
    ):
        if default_duration_minutes <= 0:
            raise ValueError("default_duration_minutes must be greater than zero")
        self.working_hours = working_hours
        self.default_duration_minutes = default_duration_minutes

    def total_duration(
        self,
        service_ids: Sequence[str],
        durations: Mapping[str, int]
    ) -> int:
        """
        Total minutes needed for the requested services.

        An empty request falls back to the default duration.
        """
        if not service_ids:
            return self.default_duration_minutes
        return sum_durations(service_ids, durations)

    def booking_range(self, booking: Booking, durations: Mapping[str, int]) -> TimeRange:
        """
        Derive the range a booking occupies.

        A booking without services still occupies the default duration
        so it never turns into a zero-width phantom.
        """
        if booking.service_ids:
            duration = sum_durations(booking.service_ids, durations)
        else:
            duration = self.default_duration_minutes
        return TimeRange.starting_at(booking.start, duration)

    def occupied_ranges(
        self,
        bookings: Iterable[Booking],
        durations: Mapping[str, int]
    ) -> List[TimeRange]:
        """Ranges of all active bookings; inactive ones are skipped entirely."""
        return [
            self.booking_range(booking, durations)
            for booking in bookings
            if booking.is_active
        ]

    def fits_working_hours(self, proposed: TimeRange) -> bool:
        return self.working_hours.contains(proposed)

    def iter_available_slots(
        self,
        total_duration: int,
        booked_ranges: Sequence[TimeRange],
        hidden_hours: AbstractSet[TimeOfDay] = frozenset()
    ) -> Iterator[TimeOfDay]:
        """Yield every valid start time, earliest first."""
        closing = self.working_hours.close_time.minutes

        for start in self.working_hours.candidate_starts():
            end = start + total_duration

            # Must finish by closing time, however early it starts
            if end > closing:
                continue

            candidate = TimeOfDay(start)
            if candidate in hidden_hours:
                continue

            if has_conflict(TimeRange(start=start, end=end), booked_ranges):
                continue

            yield candidate

    def find_available_slots(
        self,
        total_duration: int,
        booked_ranges: Sequence[TimeRange],
        hidden_hours: AbstractSet[TimeOfDay] = frozenset()
    ) -> List[TimeOfDay]:
        """
        Find all bookable start times.

        Args:
            total_duration: Minutes the new appointment needs
            booked_ranges: Ranges occupied by active bookings
            hidden_hours: Start times blocked out by the barber

        Returns:
            Start times in ascending order
        """
        return list(self.iter_available_slots(total_duration, booked_ranges, hidden_hours))
