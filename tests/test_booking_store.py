import asyncio
import gc
from unittest.mock import AsyncMock

import pytest

from app import models
from app.domain.availability.errors import BookingConflictError
from app.domain.availability.repository import SqlConfigurationStore
from app.domain.bookings import repository as booking_repository
from app.domain.bookings.repository import SqlBookingStore, to_utc, workspace_lock
from app.domain.bookings.schemas import BookingRequest
from app.domain.bookings.service import BookingGate
from conftest import NOW, seed_workspace, utc

pytestmark = pytest.mark.asyncio


def booking_data(start, end, provider=None, status="pending", name="Ada Lovelace"):
    return {
        "workspace_id": 1,
        "service_provider_id": provider,
        "invitee_name": name,
        "start_at": start,
        "end_at": end,
        "status": status,
        "source": "dashboard",
    }


def sql_gate(factory, enqueue=None):
    return BookingGate(
        SqlConfigurationStore(factory),
        SqlBookingStore(factory),
        enqueue=enqueue or AsyncMock(),
    )


async def test_insert_and_list(seeded_factory):
    store = SqlBookingStore(seeded_factory)
    booking = await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15)))
    await store.insert(booking_data(utc(2024, 6, 12, 14), utc(2024, 6, 12, 15), status="cancelled"))

    assert booking.id
    candidates = await store.list_bookings_for_range(1, utc(2024, 6, 10), utc(2024, 6, 13))
    assert [c.id for c in candidates] == [booking.id]
    assert candidates[0].start_at == utc(2024, 6, 10, 14)
    assert candidates[0].start_at.tzinfo is not None


async def test_list_includes_bookings_overlapping_range_edges(seeded_factory):
    store = SqlBookingStore(seeded_factory)
    long_booking = await store.insert(booking_data(utc(2024, 6, 9, 22), utc(2024, 6, 10, 2)))

    candidates = await store.list_bookings_for_range(1, utc(2024, 6, 10), utc(2024, 6, 11))
    assert [c.id for c in candidates] == [long_booking.id]


async def test_list_filters_by_provider(seeded_factory):
    store = SqlBookingStore(seeded_factory)
    await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15), provider="7"))
    await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15), provider="8"))

    assert len(await store.list_bookings_for_range(1, utc(2024, 6, 10), utc(2024, 6, 11))) == 2
    only_seven = await store.list_bookings_for_range(1, utc(2024, 6, 10), utc(2024, 6, 11), "7")
    assert [c.service_provider_id for c in only_seven] == ["7"]


async def test_insert_rechecks_overlap(seeded_factory):
    store = SqlBookingStore(seeded_factory)
    await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15)))

    with pytest.raises(BookingConflictError):
        await store.insert(booking_data(utc(2024, 6, 10, 14, 30), utc(2024, 6, 10, 15, 30)))
    # Another provider's calendar is independent
    await store.insert(booking_data(utc(2024, 6, 10, 14, 30), utc(2024, 6, 10, 15, 30), provider="8"))


async def test_concurrent_gates_accept_exactly_one(seeded_factory):
    gate_a = sql_gate(seeded_factory)
    gate_b = sql_gate(seeded_factory)
    request = dict(workspace_id=1, start_at=utc(2024, 6, 10, 14), end_at=utc(2024, 6, 10, 15))

    decisions = await asyncio.gather(
        gate_a.evaluate_and_create(BookingRequest(invitee_name="Ada", **request), now=NOW),
        gate_b.evaluate_and_create(BookingRequest(invitee_name="Grace", **request), now=NOW),
    )

    assert sorted(d.accepted for d in decisions) == [False, True]
    assert [d.reason for d in decisions if not d.accepted] == ["booking_conflict"]

    db = seeded_factory()
    try:
        assert db.query(models.Booking).count() == 1
    finally:
        db.close()


async def test_gate_uses_event_type_duration(seeded_factory):
    decision = await sql_gate(seeded_factory).evaluate_and_create(
        BookingRequest(workspace_id=1, event_type_id=10, invitee_name="Ada", start_at=utc(2024, 6, 10, 17)),
        now=NOW,
    )
    assert decision.accepted
    assert decision.end_at == utc(2024, 6, 10, 18)


async def test_reschedule_excludes_itself(seeded_factory):
    store = SqlBookingStore(seeded_factory)
    booking = await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15)))

    moved = await store.reschedule(1, booking.id, utc(2024, 6, 10, 14, 30), utc(2024, 6, 10, 15, 30))
    assert to_utc(moved.start_at) == utc(2024, 6, 10, 14, 30)
    assert await store.reschedule(1, "missing", utc(2024, 6, 10, 16), utc(2024, 6, 10, 17)) is None


async def test_reschedule_into_other_booking_conflicts(seeded_factory):
    store = SqlBookingStore(seeded_factory)
    first = await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15)))
    await store.insert(booking_data(utc(2024, 6, 10, 16), utc(2024, 6, 10, 17)))

    with pytest.raises(BookingConflictError):
        await store.reschedule(1, first.id, utc(2024, 6, 10, 16, 30), utc(2024, 6, 10, 17, 30))


async def test_set_contact(seeded_factory):
    store = SqlBookingStore(seeded_factory)
    db = seeded_factory()
    try:
        contact = models.Contact(workspace_id=1, name="Ada", email="ada@example.com")
        db.add(contact)
        db.commit()
        contact_id = contact.id
    finally:
        db.close()

    booking = await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15)))
    await store.set_contact(booking.id, contact_id)

    db = seeded_factory()
    try:
        assert db.get(models.Booking, booking.id).contact_id == contact_id
    finally:
        db.close()


async def test_second_workspace_is_independent(session_factory):
    seed_workspace(session_factory, workspace_id=1)
    seed_workspace(session_factory, workspace_id=2)
    store = SqlBookingStore(session_factory)
    await store.insert(booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15)))
    await store.insert({**booking_data(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15)), "workspace_id": 2})


async def test_idle_workspace_locks_are_dropped():
    lock = workspace_lock(7)
    assert workspace_lock(7) is lock

    async with lock:
        assert 7 in booking_repository._workspace_locks

    del lock
    gc.collect()
    assert 7 not in booking_repository._workspace_locks
