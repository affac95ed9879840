"""Concurrent callers against one slot never overbook it."""

from __future__ import annotations

import asyncio

import pytest

from agenda_engine.api import deps
from agenda_engine.core import errors
from agenda_engine.core.config import get_settings
from agenda_engine.db.session import get_sessionmaker
from agenda_engine.models import SlotStatus
from agenda_engine.services import reservation_service
from agenda_engine.services.results import BookingKind
from agenda_engine.services.scheduling_service import SchedulingService
from agenda_engine.services.slot_locks import SlotLockRegistry

pytestmark = pytest.mark.asyncio


async def test_concurrent_bookings_respect_capacity(scheduler, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=3)
    slot = await make_slot(agenda)

    results = await asyncio.gather(
        *(scheduler.book_slot(slot.id, party_id=f"party-{n}") for n in range(10))
    )

    reserved = [result for result in results if result.kind is BookingKind.RESERVED]
    queued = [result for result in results if result.kind is BookingKind.WAITLISTED]
    assert len(reserved) == 3
    assert sorted(result.position for result in queued) == list(range(1, 8))

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 3
    assert len(snapshot.reservations) == 3
    assert snapshot.slot.status is SlotStatus.FULL
    assert [entry.position for entry in snapshot.waitlist] == list(range(1, 8))


async def test_concurrent_cancellations_keep_seats_filled(
    scheduler, make_agenda, make_slot
) -> None:
    agenda = await make_agenda(capacity_per_slot=2)
    slot = await make_slot(agenda)
    holders = [await scheduler.book_slot(slot.id, party_id=f"holder-{n}") for n in range(2)]
    for n in range(4):
        await scheduler.book_slot(slot.id, party_id=f"queued-{n}")

    await asyncio.gather(
        *(
            scheduler.cancel_reservation(holder.reservation.id, actor_id=holder.reservation.party_id)
            for holder in holders
        )
    )

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 2
    assert sorted(item.party_id for item in snapshot.reservations) == ["queued-0", "queued-1"]
    assert [(entry.party_id, entry.position) for entry in snapshot.waitlist] == [
        ("queued-2", 1),
        ("queued-3", 2),
    ]


async def test_same_party_racing_itself_books_once(scheduler, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=5)
    slot = await make_slot(agenda)

    outcomes = await asyncio.gather(
        *(scheduler.book_slot(slot.id, party_id="alice") for _ in range(4)),
        return_exceptions=True,
    )

    booked = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]
    assert len(booked) == 1
    assert await scheduler.slot_counts(slot.id) == (1, 0)


async def test_request_scoped_facades_share_slot_locks(
    scheduler, make_agenda, make_slot
) -> None:
    assert deps.get_scheduler()._locks is deps._slot_locks

    agenda = await make_agenda(capacity_per_slot=1)
    slot = await make_slot(agenda)
    await scheduler.book_slot(slot.id, party_id="holder")

    # One facade per call, the way each HTTP request builds it.
    results = await asyncio.gather(
        *(deps.get_scheduler().book_slot(slot.id, party_id=f"late-{n}") for n in range(8))
    )

    assert all(result.kind is BookingKind.WAITLISTED for result in results)
    assert [result.position for result in results] == list(range(1, 9))

    snapshot = await scheduler.list_slot(slot.id)
    assert [(entry.party_id, entry.position) for entry in snapshot.waitlist] == [
        (f"late-{n}", n + 1) for n in range(8)
    ]


async def test_waitlist_positions_follow_arrival_order(
    scheduler, make_agenda, make_slot
) -> None:
    agenda = await make_agenda(capacity_per_slot=2)
    slot = await make_slot(agenda)

    results = await asyncio.gather(
        *(scheduler.book_slot(slot.id, party_id=f"party-{n}") for n in range(6))
    )

    assert [result.kind for result in results[:2]] == [BookingKind.RESERVED] * 2
    assert [result.position for result in results[2:]] == [1, 2, 3, 4]
    assert [result.entry.party_id for result in results[2:]] == [
        "party-2",
        "party-3",
        "party-4",
        "party-5",
    ]


async def test_held_slot_lock_surfaces_as_busy(
    reset_database, db_url, make_agenda, make_slot
) -> None:
    agenda = await make_agenda(capacity_per_slot=1)
    slot = await make_slot(agenda)
    registry = SlotLockRegistry()
    settings = get_settings().model_copy(
        update={
            "slot_lock_timeout_seconds": 0.05,
            "slot_lock_max_attempts": 2,
            "slot_lock_backoff_max_seconds": 0.01,
        }
    )
    impatient = SchedulingService(get_sessionmaker(db_url), settings=settings, locks=registry)

    async with registry.hold(slot.id, timeout=1):
        with pytest.raises(errors.SlotBusyError):
            await impatient.book_slot(slot.id, party_id="alice")
        with pytest.raises(errors.SlotBusyError):
            await impatient.list_slot(slot.id)

    booked = await impatient.book_slot(slot.id, party_id="alice")
    assert booked.kind is BookingKind.RESERVED


async def test_snapshot_is_not_split_by_a_concurrent_booking(
    scheduler, make_agenda, make_slot, monkeypatch
) -> None:
    agenda = await make_agenda(capacity_per_slot=3)
    slot = await make_slot(agenda)
    await scheduler.book_slot(slot.id, party_id="early")

    original = reservation_service.list_for_slot
    bookings: list[asyncio.Task] = []

    async def list_after_a_booking(session, slot_id, **kwargs):
        bookings.append(asyncio.create_task(scheduler.book_slot(slot_id, party_id="late")))
        await asyncio.sleep(0.2)
        return await original(session, slot_id, **kwargs)

    monkeypatch.setattr(reservation_service, "list_for_slot", list_after_a_booking)
    snapshot = await scheduler.list_slot(slot.id)
    monkeypatch.undo()

    assert snapshot.slot.filled == 1
    assert [item.party_id for item in snapshot.reservations] == ["early"]

    await asyncio.gather(*bookings)
    after = await scheduler.list_slot(slot.id)
    assert after.slot.filled == len(after.reservations) == 2
