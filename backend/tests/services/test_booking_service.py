"""Booking protocol tests: reserve, queue, cancel and approval."""

from __future__ import annotations

import uuid

import pytest

from agenda_engine.core import errors
from agenda_engine.db.session import get_sessionmaker
from agenda_engine.models import (
    AnnouncerMember,
    ReservationStatus,
    SlotStatus,
    WaitlistStatus,
)
from agenda_engine.services.notification_service import NotificationKind
from agenda_engine.services.results import BookingKind

pytestmark = pytest.mark.asyncio


async def test_booking_fills_then_queues(scheduler, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=2)
    slot = await make_slot(agenda)

    first = await scheduler.book_slot(slot.id, party_id="alice")
    second = await scheduler.book_slot(slot.id, party_id="bob")
    third = await scheduler.book_slot(slot.id, party_id="carol")

    assert first.kind is BookingKind.RESERVED
    assert first.reservation.status is ReservationStatus.CONFIRMED
    assert second.kind is BookingKind.RESERVED
    assert third.kind is BookingKind.WAITLISTED
    assert third.position == 1
    assert third.entry.status is WaitlistStatus.WAITING

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 2
    assert snapshot.slot.status is SlotStatus.FULL
    assert len(snapshot.reservations) == snapshot.slot.filled
    assert [entry.party_id for entry in snapshot.waitlist] == ["carol"]

    assert await scheduler.slot_counts(slot.id) == (2, 1)


async def test_double_booking_is_rejected(scheduler, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=1)
    slot = await make_slot(agenda)
    await scheduler.book_slot(slot.id, party_id="alice")
    await scheduler.book_slot(slot.id, party_id="bob")

    with pytest.raises(errors.DuplicateBookingError):
        await scheduler.book_slot(slot.id, party_id="alice")
    with pytest.raises(errors.DuplicateBookingError):
        await scheduler.book_slot(slot.id, party_id="bob")

    assert await scheduler.slot_counts(slot.id) == (1, 1)


async def test_booking_closed_or_missing_slot(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda()
    slot = await make_slot(agenda)
    await scheduler.cancel_slot(slot.id, actor_id=owner_id)

    with pytest.raises(errors.ClosedError):
        await scheduler.book_slot(slot.id, party_id="alice")
    with pytest.raises(errors.NotFoundError):
        await scheduler.book_slot(uuid.uuid4(), party_id="alice")


async def test_archived_agenda_refuses_bookings(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda()
    slot = await make_slot(agenda)
    await scheduler.archive_agenda(agenda.id, actor_id=owner_id)

    with pytest.raises(errors.ClosedError):
        await scheduler.book_slot(slot.id, party_id="alice")


async def test_rebooking_after_cancel_is_allowed(scheduler, make_agenda, make_slot) -> None:
    agenda = await make_agenda()
    slot = await make_slot(agenda)
    booked = await scheduler.book_slot(slot.id, party_id="alice")
    await scheduler.cancel_reservation(booked.reservation.id, actor_id="alice")

    again = await scheduler.book_slot(slot.id, party_id="alice")
    assert again.kind is BookingKind.RESERVED
    assert again.reservation.id != booked.reservation.id


async def test_cancel_then_slot_cancel_scenario(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=2)
    slot = await make_slot(agenda)
    a = await scheduler.book_slot(slot.id, party_id="A")
    b = await scheduler.book_slot(slot.id, party_id="B")
    c = await scheduler.book_slot(slot.id, party_id="C")
    d = await scheduler.book_slot(slot.id, party_id="D")
    assert (c.position, d.position) == (1, 2)

    released = await scheduler.cancel_reservation(a.reservation.id, actor_id="A")

    assert len(released.promotions) == 1
    promotion = released.promotions[0]
    assert promotion.entry.id == c.entry.id
    assert promotion.entry.status is WaitlistStatus.PROMOTED
    assert promotion.reservation.status is ReservationStatus.CONFIRMED
    assert promotion.reservation.waitlist_entry_id == c.entry.id
    assert [event.event for event in released.all_notifications()] == [
        NotificationKind.PROMOTED
    ]

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 2
    assert snapshot.slot.status is SlotStatus.FULL
    assert [(entry.party_id, entry.position) for entry in snapshot.waitlist] == [("D", 1)]

    outcome = await scheduler.cancel_slot(slot.id, actor_id=owner_id)
    assert set(outcome.cancelled_reservations) == {
        b.reservation.id,
        promotion.reservation.id,
    }
    assert outcome.denied_waitlist_entries == [d.entry.id]

    d_entries = await scheduler.list_party_waitlist("D", active_only=False)
    assert d_entries[0].status is WaitlistStatus.CANCELLED
    assert d_entries[0].reason == "slot cancelled"


async def test_cancel_reservation_permissions(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda()
    slot = await make_slot(agenda)
    booked = await scheduler.book_slot(slot.id, party_id="alice")

    with pytest.raises(errors.ForbiddenError):
        await scheduler.cancel_reservation(booked.reservation.id, actor_id="mallory")
    with pytest.raises(errors.NotFoundError):
        await scheduler.cancel_reservation(uuid.uuid4(), actor_id="alice")

    released = await scheduler.cancel_reservation(booked.reservation.id, actor_id=owner_id)
    assert released.reservation.status is ReservationStatus.CANCELLED
    assert released.reservation.cancel_reason == "cancelled by owner"
    assert [(event.party_id, event.event) for event in released.notifications] == [
        ("alice", NotificationKind.CANCELLED)
    ]

    with pytest.raises(errors.ConflictError):
        await scheduler.cancel_reservation(booked.reservation.id, actor_id="alice")

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 0
    assert snapshot.slot.status is SlotStatus.OPEN


async def test_approval_flow(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=1, requires_approval=True)
    slot = await make_slot(agenda)

    pending = await scheduler.book_slot(slot.id, party_id="alice")
    assert pending.reservation.status is ReservationStatus.PENDING
    queued = await scheduler.book_slot(slot.id, party_id="bob")
    assert queued.kind is BookingKind.WAITLISTED

    with pytest.raises(errors.ForbiddenError):
        await scheduler.reject_reservation(pending.reservation.id, actor_id="alice")

    rejected = await scheduler.reject_reservation(pending.reservation.id, actor_id=owner_id)
    assert rejected.reservation.status is ReservationStatus.REJECTED
    assert rejected.reservation.rejected_at is not None
    assert len(rejected.promotions) == 1
    assert rejected.promotions[0].entry.party_id == "bob"

    with pytest.raises(errors.ConflictError):
        await scheduler.confirm_reservation(pending.reservation.id, actor_id=owner_id)

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 1
    assert [item.party_id for item in snapshot.reservations] == ["bob"]


async def test_confirm_pending_reservation(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda(requires_approval=True)
    slot = await make_slot(agenda)
    pending = await scheduler.book_slot(slot.id, party_id="alice")

    confirmed = await scheduler.confirm_reservation(pending.reservation.id, actor_id=owner_id)
    assert confirmed.reservation.status is ReservationStatus.CONFIRMED
    assert confirmed.reservation.confirmed_at is not None
    assert [event.event for event in confirmed.notifications] == [NotificationKind.PROMOTED]

    with pytest.raises(errors.ConflictError):
        await scheduler.confirm_reservation(pending.reservation.id, actor_id=owner_id)


async def test_waitlist_withdrawal_reranks(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=1)
    slot = await make_slot(agenda)
    await scheduler.book_slot(slot.id, party_id="alice")
    b = await scheduler.book_slot(slot.id, party_id="bob")
    c = await scheduler.book_slot(slot.id, party_id="carol")
    d = await scheduler.book_slot(slot.id, party_id="dave")

    with pytest.raises(errors.ForbiddenError):
        await scheduler.cancel_waitlist_entry(c.entry.id, actor_id="bob")

    withdrawn = await scheduler.cancel_waitlist_entry(b.entry.id, actor_id="bob")
    assert withdrawn.entry.status is WaitlistStatus.CANCELLED
    assert withdrawn.notifications == []

    removed = await scheduler.cancel_waitlist_entry(d.entry.id, actor_id=owner_id)
    assert [(event.party_id, event.event) for event in removed.notifications] == [
        ("dave", NotificationKind.DENIED)
    ]

    snapshot = await scheduler.list_slot(slot.id)
    assert [(entry.party_id, entry.position) for entry in snapshot.waitlist] == [("carol", 1)]

    with pytest.raises(errors.ConflictError):
        await scheduler.cancel_waitlist_entry(b.entry.id, actor_id="bob")


async def test_party_listings(scheduler, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=1)
    first = await make_slot(agenda)
    second = await make_slot(agenda, offset_hours=3)
    await scheduler.book_slot(first.id, party_id="alice")
    await scheduler.book_slot(second.id, party_id="bob")
    await scheduler.book_slot(second.id, party_id="alice")

    reservations = await scheduler.list_party_reservations("alice")
    assert [item.slot_id for item in reservations] == [first.id]
    entries = await scheduler.list_party_waitlist("alice")
    assert [(item.slot_id, item.position) for item in entries] == [(second.id, 1)]


async def test_owner_waitlist_spans_every_agenda(
    scheduler, owner_id, db_url, make_agenda, make_slot
) -> None:
    yoga = await make_agenda(capacity_per_slot=1)
    pottery = await make_agenda(capacity_per_slot=1, title="Pottery", service_ref="svc-pot")
    morning = await make_slot(yoga)
    evening = await make_slot(pottery, offset_hours=8)
    for slot in (morning, evening):
        await scheduler.book_slot(slot.id, party_id="holder")
    queued = [
        (await scheduler.book_slot(morning.id, party_id="bob")).entry,
        (await scheduler.book_slot(evening.id, party_id="carol")).entry,
    ]
    await scheduler.cancel_waitlist_entry(queued[1].id, actor_id="carol")

    active = await scheduler.list_owner_waitlist(uuid.UUID(owner_id), actor_id=owner_id)
    assert [entry.id for entry in active] == [queued[0].id]

    everything = await scheduler.list_owner_waitlist(
        uuid.UUID(owner_id), actor_id=owner_id, active_only=False
    )
    assert {entry.id for entry in everything} == {entry.id for entry in queued}

    async with get_sessionmaker(db_url)() as session:
        session.add(AnnouncerMember(announcer_id=uuid.UUID(owner_id), user_id="staff-3"))
        await session.commit()
    by_member = await scheduler.list_owner_waitlist(uuid.UUID(owner_id), actor_id="staff-3")
    assert [entry.party_id for entry in by_member] == ["bob"]

    with pytest.raises(errors.ForbiddenError):
        await scheduler.list_owner_waitlist(uuid.UUID(owner_id), actor_id="bob")
