"""Slot creation, lookup and cancellation."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.core import errors
from agenda_engine.models import (
    Agenda,
    ReservationStatus,
    Slot,
    SlotStatus,
    WaitlistStatus,
)
from agenda_engine.models.mixins import utcnow
from agenda_engine.services import (
    access_service,
    audit_service,
    notification_service,
    reservation_service,
    waitlist_service,
)
from agenda_engine.services.results import SlotCancellation

logger = logging.getLogger(__name__)

SLOT_CANCELLED_REASON = "slot cancelled"

_LIVE_SLOT_STATUSES = (SlotStatus.OPEN, SlotStatus.FULL)


async def load_slot(
    session: AsyncSession, slot_id: uuid.UUID, *, for_update: bool = False
) -> Slot:
    stmt = select(Slot).where(Slot.id == slot_id).execution_options(
        populate_existing=True
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    slot = result.scalar_one_or_none()
    if slot is None:
        raise errors.NotFoundError("Slot not found", slot_id=str(slot_id))
    return slot


async def find_overlapping(
    session: AsyncSession,
    *,
    agenda_id: uuid.UUID,
    start_at: datetime,
    end_at: datetime,
) -> Slot | None:
    """Return a live slot of the agenda intersecting ``[start_at, end_at)``."""
    result = await session.execute(
        select(Slot)
        .where(
            Slot.agenda_id == agenda_id,
            Slot.status.in_(_LIVE_SLOT_STATUSES),
            Slot.start_at < end_at,
            Slot.end_at > start_at,
        )
        .limit(1)
    )
    return result.scalars().first()


async def create_slot(
    session: AsyncSession,
    *,
    agenda: Agenda,
    actor_id: str,
    start_at: datetime,
    end_at: datetime,
    capacity_override: int | None = None,
) -> Slot:
    await access_service.ensure_agenda_owner(session, actor_id=actor_id, agenda=agenda)
    if agenda.is_archived:
        raise errors.ValidationError(
            "Archived agendas accept no new slots", agenda_id=str(agenda.id)
        )
    start_at = reservation_service.coerce_utc(start_at)
    end_at = reservation_service.coerce_utc(end_at)
    if start_at >= end_at:
        raise errors.ValidationError("start_at must be before end_at")

    capacity = agenda.capacity_per_slot
    if capacity_override is not None:
        if capacity_override < 1 or capacity_override > agenda.capacity_per_slot:
            raise errors.ValidationError(
                f"capacity_override must be between 1 and {agenda.capacity_per_slot}"
            )
        capacity = capacity_override

    clash = await find_overlapping(
        session, agenda_id=agenda.id, start_at=start_at, end_at=end_at
    )
    if clash is not None:
        raise errors.ConflictError(
            "Slot overlaps an existing slot of this agenda",
            conflicting_slot_id=str(clash.id),
        )

    slot = Slot(
        id=uuid.uuid4(),
        agenda_id=agenda.id,
        start_at=start_at,
        end_at=end_at,
        capacity=capacity,
        filled=0,
    )
    slot.recompute_status()
    session.add(slot)
    await session.flush()
    audit_service.record_event(
        session,
        event_type="slot.created",
        actor_id=actor_id,
        slot_id=slot.id,
        description="Slot created",
        payload={"agenda_id": str(agenda.id), "capacity": capacity},
    )
    return slot


async def list_slots(
    session: AsyncSession,
    *,
    agenda_id: uuid.UUID,
    include_closed: bool = False,
) -> Sequence[Slot]:
    stmt = select(Slot).where(Slot.agenda_id == agenda_id)
    if not include_closed:
        stmt = stmt.where(Slot.status == SlotStatus.OPEN)
    result = await session.execute(stmt.order_by(Slot.start_at.asc(), Slot.id.asc()))
    return result.scalars().all()


async def cancel_slot(
    session: AsyncSession,
    *,
    slot: Slot,
    agenda: Agenda,
    actor_id: str,
) -> SlotCancellation:
    """Cancel a slot and everything booked against it.

    Cancelling an already-cancelled slot changes nothing and returns an empty
    result.
    """
    await access_service.ensure_agenda_owner(session, actor_id=actor_id, agenda=agenda)
    outcome = SlotCancellation()
    if slot.is_cancelled:
        return outcome

    now = utcnow()
    for reservation in await reservation_service.list_for_slot(
        session, slot.id, active_only=True
    ):
        reservation_service.ensure_transition(reservation, ReservationStatus.CANCELLED)
        reservation.status = ReservationStatus.CANCELLED
        reservation.cancelled_at = now
        reservation.cancel_reason = SLOT_CANCELLED_REASON
        outcome.cancelled_reservations.append(reservation.id)
        outcome.notifications.append(
            notification_service.cancelled(
                reservation.party_id,
                slot_id=slot.id,
                reservation_id=reservation.id,
                reason=SLOT_CANCELLED_REASON,
            )
        )

    for entry in await waitlist_service.active_queue(session, slot.id):
        waitlist_service.resolve(
            entry, WaitlistStatus.CANCELLED, reason=SLOT_CANCELLED_REASON
        )
        outcome.denied_waitlist_entries.append(entry.id)
        outcome.notifications.append(
            notification_service.denied(
                entry.party_id,
                slot_id=slot.id,
                entry_id=entry.id,
                reason=SLOT_CANCELLED_REASON,
            )
        )

    slot.filled = 0
    slot.cancelled_at = now
    slot.recompute_status()
    audit_service.record_event(
        session,
        event_type="slot.cancelled",
        actor_id=actor_id,
        slot_id=slot.id,
        description="Slot cancelled",
        payload={
            "cancelled_reservations": [str(item) for item in outcome.cancelled_reservations],
            "denied_waitlist_entries": [str(item) for item in outcome.denied_waitlist_entries],
        },
    )
    logger.info(
        "Slot %s cancelled: %d reservations, %d waitlist entries",
        slot.id,
        len(outcome.cancelled_reservations),
        len(outcome.denied_waitlist_entries),
    )
    return outcome
