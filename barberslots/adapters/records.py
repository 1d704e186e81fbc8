"""
Conversion between plain records (JSON fixtures, seed files) and domain models.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, FrozenSet, Iterable, List, Mapping

from ..domain.exceptions import InvalidRequestError
from ..domain.models import BarberSettings, Booking, BookingStatus, Service, TimeOfDay

logger = logging.getLogger(__name__)


@dataclass
class SeedData:
    """Services, bookings and barber settings loaded from a file."""
    services: List[Service] = field(default_factory=list)
    bookings: List[Booking] = field(default_factory=list)
    settings: List[BarberSettings] = field(default_factory=list)


def parse_hidden_hours(values: Iterable[Any], barber_id: str) -> FrozenSet[TimeOfDay]:
    """
    Parse stored hidden hours, skipping malformed entries.

    Hidden hours are optional data; a bad entry must not break
    availability for the whole day.
    """
    parsed = set()
    for value in values:
        try:
            parsed.add(TimeOfDay.parse(value))
        except InvalidRequestError:
            logger.warning("Ignoring malformed hidden hour %r for barber %s", value, barber_id)
    return frozenset(parsed)


def service_from_record(record: Mapping[str, Any]) -> Service:
    duration = record.get("duration")
    return Service(
        id=str(record["id"]),
        name=str(record.get("name") or ""),
        duration=int(duration) if duration is not None else None,
        price=float(record.get("price") or 0.0),
    )


def booking_from_record(record: Mapping[str, Any]) -> Booking:
    """
    Build a booking from a record.

    Raises:
        KeyError: If a required field is missing
        ValueError: If the time or status is malformed
    """
    return Booking(
        id=str(record["id"]),
        barber_id=str(record["barber_id"]),
        customer_id=str(record.get("customer_id") or ""),
        date=str(record["date"]),
        start=TimeOfDay.parse(record["timeslot"]),
        service_ids=tuple(str(service_id) for service_id in record.get("service_ids") or ()),
        status=BookingStatus.parse(record.get("status", BookingStatus.CONFIRMED)),
        total_price=float(record.get("total_price") or 0.0),
        customer_name=record.get("customer_name"),
        notes=record.get("notes"),
    )


def settings_from_record(record: Mapping[str, Any]) -> BarberSettings:
    barber_id = str(record["barber_id"])
    return BarberSettings(
        barber_id=barber_id,
        hidden_hours=parse_hidden_hours(record.get("hidden_hours") or (), barber_id),
    )


def load_seed_file(data_file: Path) -> SeedData:
    """
    Load seed data from a JSON file.

    Format:
    {
        "services": [{"id": "svc_cut", "name": "Haircut", "duration": 30, "price": 25}],
        "bookings": [
            {
                "id": "bkg_1", "barber_id": "barber_1", "customer_id": "cust_1",
                "date": "2024-11-25", "timeslot": "10:00 AM",
                "service_ids": ["svc_cut"], "status": "confirmed"
            }
        ],
        "barber_settings": [{"barber_id": "barber_1", "hidden_hours": ["1:00 PM"]}]
    }

    Invalid bookings are skipped with a warning.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a JSON object
    """
    if not data_file.exists():
        raise FileNotFoundError(f"Seed file not found: {data_file}")

    try:
        with open(data_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {data_file}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("Seed file must contain an object at the root level.")

    seed = SeedData(
        services=[service_from_record(record) for record in data.get("services", [])],
        settings=[settings_from_record(record) for record in data.get("barber_settings", [])],
    )

    for record in data.get("bookings", []):
        try:
            seed.bookings.append(booking_from_record(record))
        except (KeyError, ValueError) as exc:
            logger.warning("Skipping invalid booking record %r: %s", record.get("id"), exc)

    return seed
