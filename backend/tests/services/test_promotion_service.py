"""Waitlist promotion under the auto, manual and offer policies."""

from __future__ import annotations

from datetime import timedelta

import pytest

from agenda_engine.core import errors
from agenda_engine.models import (
    PromotionPolicy,
    ReservationStatus,
    SlotStatus,
    WaitlistStatus,
)
from agenda_engine.models.mixins import utcnow
from agenda_engine.schemas.agenda import AgendaUpdate
from agenda_engine.services.notification_service import NotificationKind

pytestmark = pytest.mark.asyncio


async def _full_slot_with_queue(make_agenda, make_slot, scheduler, policy, queued=("B", "C")):
    agenda = await make_agenda(capacity_per_slot=1, promotion_policy=policy, offer_ttl_minutes=15)
    slot = await make_slot(agenda)
    holder = await scheduler.book_slot(slot.id, party_id="A")
    entries = [
        (await scheduler.book_slot(slot.id, party_id=party)).entry for party in queued
    ]
    return agenda, slot, holder.reservation, entries


async def test_manual_policy_does_not_cascade(scheduler, owner_id, make_agenda, make_slot) -> None:
    _, slot, reservation, (b, c) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.MANUAL
    )

    released = await scheduler.cancel_reservation(reservation.id, actor_id="A")
    assert released.promotions == []

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 0
    assert snapshot.slot.status is SlotStatus.OPEN
    assert [entry.id for entry in snapshot.waitlist] == [b.id, c.id]

    # Owner may pick any waiting entry under the manual policy.
    promotion = await scheduler.promote_explicit(c.id, actor_id=owner_id)
    assert promotion.entry.status is WaitlistStatus.PROMOTED
    assert promotion.reservation.status is ReservationStatus.CONFIRMED

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 1
    assert [(entry.id, entry.position) for entry in snapshot.waitlist] == [(b.id, 1)]


async def test_explicit_promotion_respects_fifo_outside_manual(
    scheduler, owner_id, make_agenda, make_slot
) -> None:
    agenda, slot, reservation, (b, c) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.MANUAL
    )
    await scheduler.cancel_reservation(reservation.id, actor_id="A")
    await scheduler.update_agenda(
        agenda.id, actor_id=owner_id, payload=AgendaUpdate(promotion_policy=PromotionPolicy.AUTO)
    )

    with pytest.raises(errors.ConflictError):
        await scheduler.promote_explicit(c.id, actor_id=owner_id)
    with pytest.raises(errors.ForbiddenError):
        await scheduler.promote_explicit(b.id, actor_id="B")

    promotion = await scheduler.promote_explicit(b.id, actor_id=owner_id)
    assert promotion.entry.id == b.id

    # Slot is full again.
    with pytest.raises(errors.ConflictError):
        await scheduler.promote_explicit(c.id, actor_id=owner_id)


async def test_promote_next_without_room_or_queue(scheduler, owner_id, make_agenda, make_slot) -> None:
    agenda = await make_agenda(capacity_per_slot=1, promotion_policy=PromotionPolicy.MANUAL)
    slot = await make_slot(agenda)
    assert await scheduler.promote_next(slot.id, actor_id=owner_id) is None

    held = await scheduler.book_slot(slot.id, party_id="A")
    queued = await scheduler.book_slot(slot.id, party_id="B")
    assert await scheduler.promote_next(slot.id, actor_id=owner_id) is None

    await scheduler.cancel_reservation(held.reservation.id, actor_id="A")
    promotion = await scheduler.promote_next(slot.id, actor_id=owner_id)
    assert promotion is not None
    assert promotion.entry.id == queued.entry.id
    assert [event.event for event in promotion.notifications] == [NotificationKind.PROMOTED]


async def test_offer_is_held_then_accepted(scheduler, make_agenda, make_slot) -> None:
    _, slot, reservation, (b, c) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.OFFER
    )

    released = await scheduler.cancel_reservation(reservation.id, actor_id="A")
    (offer,) = released.promotions
    assert offer.entry.id == b.id
    assert offer.entry.status is WaitlistStatus.NOTIFIED
    assert offer.entry.expires_at is not None
    assert offer.reservation.status is ReservationStatus.PENDING
    assert [event.event for event in offer.notifications] == [NotificationKind.OFFERED]

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 1
    assert [entry.status for entry in snapshot.waitlist] == [
        WaitlistStatus.NOTIFIED,
        WaitlistStatus.WAITING,
    ]

    with pytest.raises(errors.ForbiddenError):
        await scheduler.accept_offer(b.id, party_id="C")
    with pytest.raises(errors.ConflictError):
        await scheduler.accept_offer(c.id, party_id="C")

    accepted = await scheduler.accept_offer(b.id, party_id="B")
    assert accepted.entry.status is WaitlistStatus.PROMOTED
    assert accepted.reservation.status is ReservationStatus.CONFIRMED

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 1
    assert [(entry.id, entry.position) for entry in snapshot.waitlist] == [(c.id, 1)]


async def test_late_acceptance_is_refused(scheduler, make_agenda, make_slot) -> None:
    _, _, reservation, (b, _) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.OFFER
    )
    await scheduler.cancel_reservation(reservation.id, actor_id="A")

    with pytest.raises(errors.ConflictError):
        await scheduler.accept_offer(b.id, party_id="B", now=utcnow() + timedelta(hours=1))


async def test_expired_offer_moves_to_next_party(scheduler, make_agenda, make_slot) -> None:
    _, slot, reservation, (b, c) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.OFFER
    )
    await scheduler.cancel_reservation(reservation.id, actor_id="A")

    expired = await scheduler.expire_notified(b.id)
    assert expired.entry.status is WaitlistStatus.EXPIRED
    assert expired.reservation.status is ReservationStatus.REJECTED
    assert [(event.party_id, event.event) for event in expired.all_notifications()] == [
        ("B", NotificationKind.DENIED),
        ("C", NotificationKind.OFFERED),
    ]

    again = await scheduler.expire_notified(b.id)
    assert again.promotions == []
    assert again.all_notifications() == []

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 1
    assert [(entry.id, entry.status) for entry in snapshot.waitlist] == [
        (c.id, WaitlistStatus.NOTIFIED)
    ]

    with pytest.raises(errors.ConflictError):
        await scheduler.accept_offer(b.id, party_id="B")


async def test_waiting_entry_cannot_expire(scheduler, make_agenda, make_slot) -> None:
    _, _, _, (b, _) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.OFFER
    )
    with pytest.raises(errors.ConflictError):
        await scheduler.expire_notified(b.id)


async def test_sweep_expires_stale_offers(scheduler, make_agenda, make_slot) -> None:
    _, slot, reservation, (b, c) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.OFFER
    )
    await scheduler.cancel_reservation(reservation.id, actor_id="A")

    nothing = await scheduler.expire_stale_offers()
    assert nothing.count == 0

    sweep = await scheduler.expire_stale_offers(now=utcnow() + timedelta(hours=1))
    assert sweep.expired == [b.id]
    assert {event.event for event in sweep.notifications} == {
        NotificationKind.DENIED,
        NotificationKind.OFFERED,
    }

    snapshot = await scheduler.list_slot(slot.id)
    assert [entry.id for entry in snapshot.waitlist] == [c.id]
    assert snapshot.waitlist[0].status is WaitlistStatus.NOTIFIED


async def test_declining_an_offer_frees_the_seat(scheduler, make_agenda, make_slot) -> None:
    _, slot, reservation, (b, c) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.OFFER
    )
    await scheduler.cancel_reservation(reservation.id, actor_id="A")

    declined = await scheduler.cancel_waitlist_entry(b.id, actor_id="B")
    assert declined.entry.status is WaitlistStatus.CANCELLED
    assert [promotion.entry.id for promotion in declined.promotions] == [c.id]

    snapshot = await scheduler.list_slot(slot.id)
    assert snapshot.slot.filled == 1
    assert [item.party_id for item in snapshot.reservations] == ["C"]


async def test_sweep_accepts_a_naive_cutoff(scheduler, make_agenda, make_slot) -> None:
    _, _, reservation, (b, _) = await _full_slot_with_queue(
        make_agenda, make_slot, scheduler, PromotionPolicy.OFFER
    )
    await scheduler.cancel_reservation(reservation.id, actor_id="A")

    later = (utcnow() + timedelta(hours=1)).replace(tzinfo=None)
    sweep = await scheduler.expire_stale_offers(now=later)
    assert sweep.expired == [b.id]
