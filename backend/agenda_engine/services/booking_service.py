"""Booking protocol: reserve, queue, cancel and owner approval.

Every function runs inside a slot unit with ``slot`` already locked.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.core import errors
from agenda_engine.models import (
    Agenda,
    Reservation,
    ReservationStatus,
    Slot,
    WaitlistEntry,
    WaitlistStatus,
)
from agenda_engine.services import (
    access_service,
    audit_service,
    notification_service,
    promotion_service,
    reservation_service,
    waitlist_service,
)
from agenda_engine.services.results import BookingKind, BookingResult, ReleaseResult

logger = logging.getLogger(__name__)

CANCELLED_BY_PARTY = "cancelled by party"
CANCELLED_BY_OWNER = "cancelled by owner"
REJECTED_BY_OWNER = "rejected by owner"


async def book_slot(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    party_id: str,
    actor_id: str | None = None,
) -> BookingResult:
    """Reserve a seat on ``slot`` or join its waitlist when it is full."""
    if slot.is_cancelled:
        raise errors.ClosedError("Slot is cancelled", slot_id=str(slot.id))
    if agenda.is_archived:
        raise errors.ClosedError("Agenda is archived", agenda_id=str(agenda.id))

    if await reservation_service.find_active(session, slot_id=slot.id, party_id=party_id):
        raise errors.DuplicateBookingError(
            "Party already holds a reservation on this slot", party_id=party_id
        )
    if await waitlist_service.find_active(session, slot_id=slot.id, party_id=party_id):
        raise errors.DuplicateBookingError(
            "Party is already on the waitlist for this slot", party_id=party_id
        )

    if slot.remaining > 0:
        status = (
            ReservationStatus.PENDING
            if agenda.requires_approval
            else ReservationStatus.CONFIRMED
        )
        reservation = reservation_service.add_reservation(
            session, slot=slot, party_id=party_id, status=status
        )
        await session.flush()
        audit_service.record_event(
            session,
            event_type="reservation.created",
            actor_id=actor_id,
            slot_id=slot.id,
            description="Reservation created",
            payload={"reservation_id": str(reservation.id), "party_id": party_id},
        )
        return BookingResult(kind=BookingKind.RESERVED, reservation=reservation)

    entry = await waitlist_service.enqueue(session, slot_id=slot.id, party_id=party_id)
    audit_service.record_event(
        session,
        event_type="waitlist.created",
        actor_id=actor_id,
        slot_id=slot.id,
        description="Waitlist entry created",
        payload={
            "waitlist_entry_id": str(entry.id),
            "party_id": party_id,
            "position": entry.position,
        },
    )
    logger.info("Slot %s full; %s queued at %s", slot.id, party_id, entry.position)
    return BookingResult(kind=BookingKind.WAITLISTED, entry=entry)


async def _resolve_actor_role(
    session: AsyncSession, *, actor_id: str, party_id: str, agenda: Agenda
) -> tuple[bool, bool]:
    is_party = actor_id == party_id
    is_owner = await access_service.actor_owns_agenda(
        session, actor_id=actor_id, agenda=agenda
    )
    if not is_party and not is_owner:
        raise errors.ForbiddenError("Actor may not modify this booking")
    return is_party, is_owner


async def _linked_offer(
    session: AsyncSession, reservation: Reservation
) -> WaitlistEntry | None:
    """Notified entry whose held seat is ``reservation``."""
    entry = await waitlist_service.find_by_reservation(session, reservation.id)
    if entry is None or entry.status is not WaitlistStatus.NOTIFIED:
        return None
    return entry


async def cancel_reservation(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    reservation: Reservation,
    actor_id: str,
    offer_ttl_minutes: int,
) -> ReleaseResult:
    is_party, _ = await _resolve_actor_role(
        session, actor_id=actor_id, party_id=reservation.party_id, agenda=agenda
    )
    if not reservation.is_active:
        raise errors.ConflictError(
            f"Reservation is already {reservation.status.value}",
            reservation_id=str(reservation.id),
        )

    reason = CANCELLED_BY_PARTY if is_party else CANCELLED_BY_OWNER
    reservation_service.cancel(reservation, slot, reason=reason)
    notifications = []
    if not is_party:
        notifications.append(
            notification_service.cancelled(
                reservation.party_id,
                slot_id=slot.id,
                reservation_id=reservation.id,
                reason=reason,
            )
        )

    entry = await _linked_offer(session, reservation)
    if entry is not None:
        waitlist_service.resolve(entry, WaitlistStatus.CANCELLED, reason=reason)
    await waitlist_service.rerank(session, slot.id)

    audit_service.record_event(
        session,
        event_type="reservation.cancelled",
        actor_id=actor_id,
        slot_id=slot.id,
        description="Reservation cancelled",
        payload={"reservation_id": str(reservation.id), "reason": reason},
    )
    promotions = await promotion_service.run_cascade(
        session, slot=slot, agenda=agenda, offer_ttl_minutes=offer_ttl_minutes
    )
    return ReleaseResult(
        reservation=reservation,
        entry=entry,
        promotions=promotions,
        notifications=notifications,
    )


async def confirm_reservation(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    reservation: Reservation,
    actor_id: str,
) -> ReleaseResult:
    """Owner approval of a pending reservation."""
    await access_service.ensure_agenda_owner(session, actor_id=actor_id, agenda=agenda)
    reservation_service.confirm(reservation)
    entry = await _linked_offer(session, reservation)
    if entry is not None:
        waitlist_service.resolve(entry, WaitlistStatus.PROMOTED)
        await waitlist_service.rerank(session, slot.id)

    audit_service.record_event(
        session,
        event_type="reservation.confirmed",
        actor_id=actor_id,
        slot_id=slot.id,
        description="Reservation confirmed",
        payload={"reservation_id": str(reservation.id)},
    )
    return ReleaseResult(
        reservation=reservation,
        entry=entry,
        notifications=[
            notification_service.promoted(
                reservation.party_id, slot_id=slot.id, reservation_id=reservation.id
            )
        ],
    )


async def reject_reservation(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    reservation: Reservation,
    actor_id: str,
    offer_ttl_minutes: int,
) -> ReleaseResult:
    await access_service.ensure_agenda_owner(session, actor_id=actor_id, agenda=agenda)
    reservation_service.reject(reservation, slot, reason=REJECTED_BY_OWNER)
    notifications = [
        notification_service.cancelled(
            reservation.party_id,
            slot_id=slot.id,
            reservation_id=reservation.id,
            reason=REJECTED_BY_OWNER,
        )
    ]
    entry = await _linked_offer(session, reservation)
    if entry is not None:
        waitlist_service.resolve(entry, WaitlistStatus.CANCELLED, reason=REJECTED_BY_OWNER)
        await waitlist_service.rerank(session, slot.id)

    audit_service.record_event(
        session,
        event_type="reservation.rejected",
        actor_id=actor_id,
        slot_id=slot.id,
        description="Reservation rejected",
        payload={"reservation_id": str(reservation.id)},
    )
    promotions = await promotion_service.run_cascade(
        session, slot=slot, agenda=agenda, offer_ttl_minutes=offer_ttl_minutes
    )
    return ReleaseResult(
        reservation=reservation,
        entry=entry,
        promotions=promotions,
        notifications=notifications,
    )


async def cancel_waitlist_entry(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    entry: WaitlistEntry,
    actor_id: str,
    offer_ttl_minutes: int,
) -> ReleaseResult:
    """Withdraw a queued party; a declined offer frees its held seat."""
    is_party, _ = await _resolve_actor_role(
        session, actor_id=actor_id, party_id=entry.party_id, agenda=agenda
    )
    if not entry.is_active:
        raise errors.ConflictError(
            f"Waitlist entry is already {entry.status.value}", entry_id=str(entry.id)
        )

    reason = CANCELLED_BY_PARTY if is_party else CANCELLED_BY_OWNER
    held = None
    if entry.status is WaitlistStatus.NOTIFIED and entry.reservation_id is not None:
        held = await session.get(Reservation, entry.reservation_id)
        if held is not None and held.status is ReservationStatus.PENDING:
            reservation_service.reject(held, slot, reason=reason)
        else:
            held = None

    waitlist_service.resolve(entry, WaitlistStatus.CANCELLED, reason=reason)
    await waitlist_service.rerank(session, slot.id)
    notifications = []
    if not is_party:
        notifications.append(
            notification_service.denied(
                entry.party_id, slot_id=slot.id, entry_id=entry.id, reason=reason
            )
        )
    audit_service.record_event(
        session,
        event_type="waitlist.cancelled",
        actor_id=actor_id,
        slot_id=slot.id,
        description="Waitlist entry cancelled",
        payload={"waitlist_entry_id": str(entry.id), "reason": reason},
    )

    promotions = []
    if held is not None:
        promotions = await promotion_service.run_cascade(
            session, slot=slot, agenda=agenda, offer_ttl_minutes=offer_ttl_minutes
        )
    return ReleaseResult(
        reservation=held,
        entry=entry,
        promotions=promotions,
        notifications=notifications,
    )
