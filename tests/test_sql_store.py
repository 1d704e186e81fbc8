"""
Tests for the SQLAlchemy booking store on a file-backed SQLite database.
"""

import asyncio

import pytest

from barberslots.adapters.memory_store import DEFAULT_DATA_FILE
from barberslots.adapters.records import SeedData, load_seed_file
from barberslots.adapters.sql_store import SqlBookingStore
from barberslots.domain.exceptions import SlotConflictError, StorageError
from barberslots.domain.models import ACTIVE_STATUSES, BarberSettings, BookingStatus, Caller, Role, TimeOfDay

from helpers import DAY, SERVICES, build_services, make_booking


def run_with_store(tmp_path, scenario, seed=None, init=True):
    """Run `scenario(store)` against a fresh database and dispose of it afterwards."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}"

    async def runner():
        store = SqlBookingStore.from_url(url)
        try:
            if init:
                await store.init_schema()
            if seed is not None:
                await store.seed(seed)
            return await scenario(store)
        finally:
            await store.dispose()

    return asyncio.run(runner())


def seed_with(bookings=(), settings=()):
    return SeedData(services=list(SERVICES), bookings=list(bookings), settings=list(settings))


def test_get_services_in_one_batch(tmp_path):
    async def scenario(store):
        return await store.get_services(["svc_cut", "svc_color", "svc_cut", "svc_missing"])

    services = run_with_store(tmp_path, scenario, seed=seed_with())

    assert {service.id: service.duration for service in services} == {"svc_cut": 30, "svc_color": 90}


def test_get_bookings_filters_and_orders(tmp_path):
    bookings = [
        make_booking("bkg_1", "2:00 PM", status=BookingStatus.PENDING),
        make_booking("bkg_2", "9:00 AM", service_ids=("svc_cut", "svc_beard")),
        make_booking("bkg_3", "11:00 AM", status=BookingStatus.CANCELLED),
        make_booking("bkg_4", "10:00 AM", barber_id="barber_2"),
        make_booking("bkg_5", "10:00 AM", date="2024-11-26"),
    ]

    async def scenario(store):
        return await store.get_bookings("barber_1", DAY, ACTIVE_STATUSES)

    active = run_with_store(tmp_path, scenario, seed=seed_with(bookings))

    assert [booking.id for booking in active] == ["bkg_2", "bkg_1"]
    assert active[0].service_ids == ("svc_cut", "svc_beard")
    assert active[0].start == TimeOfDay.parse("9:00 AM")


def test_settings_round_trip(tmp_path):
    settings = BarberSettings("barber_1", frozenset({TimeOfDay.parse("1:00 PM"), TimeOfDay.parse("1:15 PM")}))

    async def scenario(store):
        missing = await store.get_barber_settings("barber_2")
        found = await store.get_barber_settings("barber_1")
        return missing, found

    missing, found = run_with_store(tmp_path, scenario, seed=seed_with(settings=[settings]))

    assert missing is None
    assert found == settings


def test_list_bookings_filters_and_orders(tmp_path):
    bookings = [
        make_booking("bkg_1", "2:00 PM", status=BookingStatus.PENDING),
        make_booking("bkg_2", "9:00 AM", customer_id="cust_2"),
        make_booking("bkg_3", "11:00 AM", status=BookingStatus.CANCELLED),
        make_booking("bkg_4", "10:00 AM", barber_id="barber_2"),
        make_booking("bkg_5", "10:00 AM", date="2024-11-20"),
    ]

    async def scenario(store):
        return (
            await store.list_bookings(),
            await store.list_bookings(customer_id="cust_1", barber_id="barber_1"),
            await store.list_bookings(date=DAY, statuses=[BookingStatus.CANCELLED, BookingStatus.PENDING]),
        )

    everything, customer, by_status = run_with_store(tmp_path, scenario, seed=seed_with(bookings))

    assert [booking.id for booking in everything] == ["bkg_5", "bkg_2", "bkg_4", "bkg_3", "bkg_1"]
    assert [booking.id for booking in customer] == ["bkg_5", "bkg_3", "bkg_1"]
    assert [booking.id for booking in by_status] == ["bkg_3", "bkg_1"]


def test_customer_listing_through_service(tmp_path):
    async def scenario(store):
        _, bookings = build_services(store)
        await bookings.create_booking(
            Caller("cust_1"), barber_id="barber_1", date=DAY, start_time="9:00 AM", service_ids=["svc_cut"]
        )
        await bookings.create_booking(
            Caller("cust_1"), barber_id="barber_2", date="2024-11-26", start_time="9:00 AM", service_ids=["svc_cut"]
        )
        return await bookings.list_customer_bookings(Caller("cust_1"))

    found = run_with_store(tmp_path, scenario, seed=seed_with())

    assert [(booking.barber_id, booking.date) for booking in found] == [
        ("barber_2", "2024-11-26"),
        ("barber_1", DAY),
    ]
    assert found[0].total_price == 25.0


def test_unique_index_rejects_second_active_booking_at_same_start(tmp_path):
    """The index guards writers that skip the overlap check."""
    async def scenario(store):
        with pytest.raises(SlotConflictError):
            async with store.transaction() as tx:
                await tx.insert_booking(make_booking("bkg_2", "10:00 AM", service_ids=("svc_cut",)))
        return await store.get_booking("bkg_2")

    seed = seed_with([make_booking("bkg_1", "10:00 AM")])

    assert run_with_store(tmp_path, scenario, seed=seed) is None


def test_unique_index_ignores_inactive_bookings(tmp_path):
    async def scenario(store):
        async with store.transaction() as tx:
            await tx.insert_booking(make_booking("bkg_2", "10:00 AM"))
        return await store.get_bookings("barber_1", DAY, ACTIVE_STATUSES)

    seed = seed_with([make_booking("bkg_1", "10:00 AM", status=BookingStatus.CANCELLED)])

    assert [booking.id for booking in run_with_store(tmp_path, scenario, seed=seed)] == ["bkg_2"]


@pytest.mark.parametrize(
    "first, second",
    [
        (("10:00 AM", ["svc_hour"]), ("10:00 AM", ["svc_hour"])),
        (("9:00 AM", ["svc_color"]), ("9:30 AM", ["svc_hour"])),
    ],
)
def test_concurrent_bookings_have_one_winner(tmp_path, first, second):
    """Racing requests for overlapping times leave exactly one active booking."""
    async def scenario(store):
        _, bookings = build_services(store)

        def attempt(customer, start, service_ids):
            return bookings.create_booking(
                Caller(customer),
                barber_id="barber_1",
                date=DAY,
                start_time=start,
                service_ids=service_ids,
            )

        results = await asyncio.gather(
            attempt("cust_a", *first),
            attempt("cust_b", *second),
            return_exceptions=True,
        )
        stored = await store.get_bookings("barber_1", DAY, ACTIVE_STATUSES)
        return results, stored

    results, stored = run_with_store(tmp_path, scenario, seed=seed_with())

    assert sum(isinstance(result, SlotConflictError) for result in results) == 1
    assert len(stored) == 1


def test_status_update_frees_the_slot(tmp_path):
    async def scenario(store):
        availability, bookings = build_services(store)
        await bookings.cancel_booking(Caller("cust_1"), "bkg_1")
        stored = await store.get_booking("bkg_1")
        slots = await availability.get_available_slots("barber_1", DAY, ["svc_hour"])
        return stored, slots

    stored, slots = run_with_store(tmp_path, scenario, seed=seed_with([make_booking("bkg_1", "10:00 AM")]))

    assert stored.status is BookingStatus.CANCELLED
    assert "10:00 AM" in slots


def test_hidden_hours_saved_through_service(tmp_path):
    async def scenario(store):
        _, bookings = build_services(store)
        await bookings.set_hidden_hours(Caller("admin", Role.ADMIN), "barber_1", ["12:00 PM"])
        await bookings.set_hidden_hours(Caller("admin", Role.ADMIN), "barber_1", ["12:30 PM", "12:15 PM"])
        return await bookings.get_hidden_hours("barber_1")

    assert run_with_store(tmp_path, scenario, seed=seed_with()) == ["12:15 PM", "12:30 PM"]


def test_seeding_bundled_mock_data(tmp_path):
    async def scenario(store):
        availability, _ = build_services(store)
        return await availability.get_available_slots("barber_marco", DAY, ["svc_cut"])

    slots = run_with_store(tmp_path, scenario, seed=load_seed_file(DEFAULT_DATA_FILE))

    assert "9:30 AM" in slots
    assert "9:45 AM" not in slots
    assert "1:00 PM" not in slots
    assert "3:15 PM" not in slots


def test_missing_schema_raises_storage_error(tmp_path):
    async def scenario(store):
        return await store.get_booking("bkg_1")

    with pytest.raises(StorageError):
        run_with_store(tmp_path, scenario, init=False)
