"""
Domain models for times of day, booking intervals and bookings.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import FrozenSet, Optional, Tuple

import pendulum

from .exceptions import InvalidRequestError

MINUTES_PER_DAY = 24 * 60

_TWELVE_HOUR_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])$")
_TWENTY_FOUR_HOUR_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def format_minutes(minutes: int) -> str:
    """
    Format minutes since midnight as a 12-hour clock string.

    Example: 540 -> "9:00 AM", 750 -> "12:30 PM", 30 -> "12:30 AM"
    """
    return TimeOfDay(minutes % MINUTES_PER_DAY).format()


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """
    A validated time of day, held as minutes since midnight.

    Built once from the wire format at the edge of the system and
    never re-parsed downstream.
    """
    minutes: int

    def __post_init__(self):
        if not 0 <= self.minutes < MINUTES_PER_DAY:
            raise InvalidRequestError(
                f"Time of day must be within a single day, got {self.minutes} minutes"
            )

    @classmethod
    def from_hm(cls, hour: int, minute: int = 0) -> "TimeOfDay":
        """Build from 24-hour clock components."""
        if not 0 <= hour <= 23 or not 0 <= minute <= 59:
            raise InvalidRequestError(f"Invalid time {hour:02d}:{minute:02d}")
        return cls(hour * 60 + minute)

    @classmethod
    def parse(cls, value: str) -> "TimeOfDay":
        """
        Parse "9:00 AM" style strings (the wire format) or 24-hour "09:00".

        Raises:
            InvalidRequestError: If the string is not a valid time of day
        """
        if not isinstance(value, str) or not value.strip():
            raise InvalidRequestError("Time of day is required")

        text = value.strip()

        match = _TWELVE_HOUR_PATTERN.match(text)
        if match:
            hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
            if not 1 <= hour <= 12 or minute > 59:
                raise InvalidRequestError(f"Invalid time of day: '{value}'")
            if period == "AM" and hour == 12:
                hour = 0
            elif period == "PM" and hour != 12:
                hour += 12
            return cls(hour * 60 + minute)

        match = _TWENTY_FOUR_HOUR_PATTERN.match(text)
        if match:
            return cls.from_hm(int(match.group(1)), int(match.group(2)))

        raise InvalidRequestError(
            f"Invalid time of day: '{value}'. Expected e.g. '9:00 AM' or '09:00'."
        )

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def format(self) -> str:
        """Format in the 12-hour wire format."""
        period = "PM" if self.hour >= 12 else "AM"
        return f"{self.hour % 12 or 12}:{self.minute:02d} {period}"

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class TimeRange:
    """
    Half-open interval [start, end) in minutes since midnight.

    Invariant: start is not after end. A zero-length range is allowed;
    it only conflicts with ranges that strictly contain its point.
    """
    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Start {self.start} must not be after end {self.end}")

    @classmethod
    def starting_at(cls, start: TimeOfDay, duration_minutes: int) -> "TimeRange":
        """Build the range occupied by something starting at `start`."""
        return cls(start=start.minutes, end=start.minutes + duration_minutes)

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ends do not."""
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{format_minutes(self.start)} - {format_minutes(self.end)}"


@dataclass(frozen=True)
class WorkingHours:
    """
    Opening hours of the shop and the step between candidate start times.
    """
    open_time: TimeOfDay
    close_time: TimeOfDay
    step_minutes: int = 15

    def __post_init__(self):
        if self.close_time <= self.open_time:
            raise ValueError(
                f"Closing time {self.close_time} must be after opening time {self.open_time}"
            )
        if self.step_minutes <= 0:
            raise ValueError("step_minutes must be greater than zero")

    def candidate_starts(self) -> range:
        """Minutes of every candidate start between opening and closing."""
        return range(self.open_time.minutes, self.close_time.minutes, self.step_minutes)

    def contains(self, time_range: TimeRange) -> bool:
        """Check whether a range lies entirely within opening hours."""
        return (
            time_range.start >= self.open_time.minutes
            and time_range.end <= self.close_time.minutes
        )


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: "str | BookingStatus") -> "BookingStatus":
        """Parse a status case-insensitively ('Confirmed' and 'confirmed' are equal)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(status.value for status in cls)
            raise InvalidRequestError(
                f"Unknown booking status '{value}'. Expected one of: {allowed}"
            ) from None

    @property
    def is_active(self) -> bool:
        """Active bookings occupy time on the barber's day."""
        return self in ACTIVE_STATUSES

    def can_transition_to(self, target: "BookingStatus") -> bool:
        return target in _TRANSITIONS[self]


ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)

_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


class Role(str, Enum):
    """Role of an authenticated caller."""
    CUSTOMER = "customer"
    BARBER = "barber"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    """
    Identity of whoever invokes an operation, as established by the
    authentication collaborator.
    """
    user_id: str
    role: Role = Role.CUSTOMER
    barber_id: Optional[str] = None  # Set for barber accounts

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def acts_for_barber(self, barber_id: str) -> bool:
        """Check if the caller is the given barber (or an admin)."""
        if self.is_admin:
            return True
        return self.role is Role.BARBER and self.barber_id == barber_id


@dataclass(frozen=True)
class Service:
    """A bookable service from the catalog."""
    id: str
    name: str = ""
    duration: Optional[int] = None  # Minutes; missing counts as 0
    price: float = 0.0

    @property
    def effective_duration(self) -> int:
        return self.duration or 0


@dataclass(frozen=True)
class Booking:
    """
    A stored appointment. Its occupied interval is always derived from
    `start` and the durations of `service_ids`, never stored.
    """
    id: str
    barber_id: str
    customer_id: str
    date: str
    start: TimeOfDay
    service_ids: Tuple[str, ...]
    status: BookingStatus
    total_price: float = 0.0
    customer_name: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def with_status(self, status: BookingStatus) -> "Booking":
        return replace(self, status=status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barber_id": self.barber_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "date": self.date,
            "start_time": self.start.format(),
            "service_ids": list(self.service_ids),
            "status": self.status.value,
            "total_price": self.total_price,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class BookedSlot:
    """An occupied start time and the status of the booking holding it."""
    start: TimeOfDay
    status: BookingStatus

    def to_dict(self) -> dict:
        return {"start_time": self.start.format(), "status": self.status.value}


@dataclass(frozen=True)
class BarberSettings:
    """Per-barber settings; hidden hours are start times blocked out by the barber."""
    barber_id: str
    hidden_hours: FrozenSet[TimeOfDay] = frozenset()

    def hidden_labels(self) -> list:
        """Hidden hours in ascending order, formatted for the wire."""
        return [t.format() for t in sorted(self.hidden_hours)]


def parse_booking_date(value: Optional[str], timezone: str = "Europe/Berlin") -> str:
    """
    Validate a calendar-day key (YYYY-MM-DD) in the shop's timezone.

    The date stays an opaque string key afterwards; it is only compared
    by equality.

    Raises:
        InvalidRequestError: If the date is missing or not a real calendar day
    """
    if not value or not str(value).strip():
        raise InvalidRequestError("date is required")

    try:
        day = pendulum.from_format(str(value).strip(), "YYYY-MM-DD", tz=timezone)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid date '{value}': expected YYYY-MM-DD") from exc

    return day.format("YYYY-MM-DD")
