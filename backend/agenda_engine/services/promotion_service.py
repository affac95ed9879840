"""Promotion of waitlisted parties into freed capacity.

All functions here expect to run inside a slot unit: the slot row is locked,
loaded into ``session`` and the caller commits once at the end.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.core import errors
from agenda_engine.models import (
    Agenda,
    PromotionPolicy,
    Reservation,
    ReservationStatus,
    Slot,
    WaitlistEntry,
    WaitlistStatus,
)
from agenda_engine.models.mixins import utcnow
from agenda_engine.services import (
    audit_service,
    notification_service,
    reservation_service,
    waitlist_service,
)
from agenda_engine.services.results import PromotionResult, ReleaseResult

logger = logging.getLogger(__name__)

OFFER_EXPIRED_REASON = "offer expired"


def offer_window(agenda: Agenda, default_minutes: int) -> timedelta:
    return timedelta(minutes=agenda.offer_ttl_minutes or default_minutes)


async def convert_entry(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    entry: WaitlistEntry,
    offer_ttl_minutes: int,
    actor_id: str | None = None,
) -> PromotionResult:
    """Turn a waiting entry into a reservation on ``slot``.

    Under the offer policy the party gets a held (pending) seat and a response
    window; otherwise the seat is confirmed straight away.
    """
    if agenda.promotion_policy is PromotionPolicy.OFFER:
        reservation = reservation_service.add_reservation(
            session,
            slot=slot,
            party_id=entry.party_id,
            status=ReservationStatus.PENDING,
            waitlist_entry_id=entry.id,
        )
        now = utcnow()
        entry.status = WaitlistStatus.NOTIFIED
        entry.notified_at = now
        entry.expires_at = now + offer_window(agenda, offer_ttl_minutes)
        entry.reservation_id = reservation.id
        notification = notification_service.offered(
            entry.party_id,
            slot_id=slot.id,
            entry_id=entry.id,
            reservation_id=reservation.id,
            expires_at=entry.expires_at,
        )
        event_type = "waitlist.offered"
    else:
        reservation = reservation_service.add_reservation(
            session,
            slot=slot,
            party_id=entry.party_id,
            status=ReservationStatus.CONFIRMED,
            waitlist_entry_id=entry.id,
        )
        entry.reservation_id = reservation.id
        waitlist_service.resolve(entry, WaitlistStatus.PROMOTED)
        notification = notification_service.promoted(
            entry.party_id, slot_id=slot.id, reservation_id=reservation.id
        )
        event_type = "waitlist.promoted"

    await waitlist_service.rerank(session, slot.id)
    audit_service.record_event(
        session,
        event_type=event_type,
        actor_id=actor_id,
        slot_id=slot.id,
        description=f"Waitlist entry {entry.status.value}",
        payload={
            "waitlist_entry_id": str(entry.id),
            "reservation_id": str(reservation.id),
            "party_id": entry.party_id,
        },
    )
    logger.info(
        "Waitlist entry %s on slot %s -> %s", entry.id, slot.id, entry.status.value
    )
    return PromotionResult(entry=entry, reservation=reservation, notifications=[notification])


async def promote_next(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    offer_ttl_minutes: int,
    actor_id: str | None = None,
) -> PromotionResult | None:
    if slot.remaining <= 0:
        return None
    head = await waitlist_service.head_waiting(session, slot.id)
    if head is None:
        return None
    return await convert_entry(
        session,
        slot=slot,
        agenda=agenda,
        entry=head,
        offer_ttl_minutes=offer_ttl_minutes,
        actor_id=actor_id,
    )


async def promote_explicit(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    entry: WaitlistEntry,
    offer_ttl_minutes: int,
    actor_id: str,
) -> PromotionResult:
    if slot.is_cancelled:
        raise errors.ClosedError("Slot is cancelled", slot_id=str(slot.id))
    if entry.status is not WaitlistStatus.WAITING:
        raise errors.ConflictError(
            "Only waiting entries can be promoted",
            entry_id=str(entry.id),
            status=entry.status.value,
        )
    if slot.remaining <= 0:
        raise errors.ConflictError("Slot has no free capacity", slot_id=str(slot.id))
    if agenda.promotion_policy is not PromotionPolicy.MANUAL:
        head = await waitlist_service.head_waiting(session, slot.id)
        if head is None or head.id != entry.id:
            raise errors.ConflictError(
                "Entry is not at the head of the waitlist", entry_id=str(entry.id)
            )
    return await convert_entry(
        session,
        slot=slot,
        agenda=agenda,
        entry=entry,
        offer_ttl_minutes=offer_ttl_minutes,
        actor_id=actor_id,
    )


async def run_cascade(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    offer_ttl_minutes: int,
) -> list[PromotionResult]:
    """Fill freed seats from the waitlist head while capacity allows."""
    if slot.is_cancelled or agenda.promotion_policy is PromotionPolicy.MANUAL:
        return []
    promotions: list[PromotionResult] = []
    while slot.remaining > 0:
        promotion = await promote_next(
            session, slot=slot, agenda=agenda, offer_ttl_minutes=offer_ttl_minutes
        )
        if promotion is None:
            break
        promotions.append(promotion)
    return promotions


async def accept_offer(
    session: AsyncSession,
    *,
    slot: Slot,
    entry: WaitlistEntry,
    party_id: str,
    now: datetime | None = None,
) -> PromotionResult:
    if entry.party_id != party_id:
        raise errors.ForbiddenError("Offer belongs to another party", entry_id=str(entry.id))
    if entry.status is not WaitlistStatus.NOTIFIED:
        raise errors.ConflictError(
            "Entry has no open offer", entry_id=str(entry.id), status=entry.status.value
        )
    current = now or utcnow()
    if entry.expires_at is not None and reservation_service.coerce_utc(entry.expires_at) <= current:
        raise errors.ConflictError("Offer has expired", entry_id=str(entry.id))
    reservation = await _held_reservation(session, entry)
    if reservation is None:
        raise errors.ConflictError("Offer no longer holds a seat", entry_id=str(entry.id))

    reservation_service.confirm(reservation)
    waitlist_service.resolve(entry, WaitlistStatus.PROMOTED)
    await waitlist_service.rerank(session, slot.id)
    audit_service.record_event(
        session,
        event_type="waitlist.accepted",
        actor_id=party_id,
        slot_id=slot.id,
        description="Offer accepted",
        payload={"waitlist_entry_id": str(entry.id), "reservation_id": str(reservation.id)},
    )
    return PromotionResult(entry=entry, reservation=reservation)


async def expire_notified(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    entry: WaitlistEntry,
    offer_ttl_minutes: int,
) -> ReleaseResult:
    """Close an unanswered offer, free its held seat and move the queue on."""
    if entry.status is WaitlistStatus.EXPIRED:
        return ReleaseResult(entry=entry)
    if entry.status is not WaitlistStatus.NOTIFIED:
        raise errors.ConflictError(
            "Only notified entries can expire",
            entry_id=str(entry.id),
            status=entry.status.value,
        )

    reservation = await _held_reservation(session, entry)
    if reservation is not None:
        reservation_service.reject(reservation, slot, reason=OFFER_EXPIRED_REASON)
    waitlist_service.resolve(entry, WaitlistStatus.EXPIRED, reason=OFFER_EXPIRED_REASON)
    await waitlist_service.rerank(session, slot.id)
    audit_service.record_event(
        session,
        event_type="waitlist.expired",
        slot_id=slot.id,
        description="Offer expired",
        payload={"waitlist_entry_id": str(entry.id)},
    )
    notifications = [
        notification_service.denied(
            entry.party_id, slot_id=slot.id, entry_id=entry.id, reason=OFFER_EXPIRED_REASON
        )
    ]
    promotions = await run_cascade(
        session, slot=slot, agenda=agenda, offer_ttl_minutes=offer_ttl_minutes
    )
    return ReleaseResult(
        reservation=reservation,
        entry=entry,
        promotions=promotions,
        notifications=notifications,
    )


async def _held_reservation(
    session: AsyncSession, entry: WaitlistEntry
) -> Reservation | None:
    if entry.reservation_id is None:
        return None
    reservation = await session.get(Reservation, entry.reservation_id)
    if reservation is None or reservation.status is not ReservationStatus.PENDING:
        return None
    return reservation
