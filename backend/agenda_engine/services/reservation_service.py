"""Reservation state machine and seat accounting."""
from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.core import errors
from agenda_engine.models import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
    Slot,
)
from agenda_engine.models.mixins import utcnow

_ALLOWED_STATUS_TRANSITIONS: dict[ReservationStatus, set[ReservationStatus]] = {
    ReservationStatus.PENDING: {
        ReservationStatus.CONFIRMED,
        ReservationStatus.REJECTED,
        ReservationStatus.CANCELLED,
    },
    ReservationStatus.CONFIRMED: {ReservationStatus.CANCELLED},
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.REJECTED: set(),
}


def coerce_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def ensure_transition(reservation: Reservation, target: ReservationStatus) -> None:
    if target not in _ALLOWED_STATUS_TRANSITIONS[reservation.status]:
        raise errors.ConflictError(
            f"Cannot transition reservation from {reservation.status.value} to {target.value}",
            reservation_id=str(reservation.id),
        )


def occupy_seat(slot: Slot) -> None:
    if slot.remaining <= 0:
        raise errors.ConflictError("Slot has no remaining capacity", slot_id=str(slot.id))
    slot.filled += 1
    slot.recompute_status()


def release_seat(slot: Slot) -> None:
    if slot.filled <= 0:
        raise errors.ConflictError("Slot has no occupied seat to release", slot_id=str(slot.id))
    slot.filled -= 1
    slot.recompute_status()


def add_reservation(
    session: AsyncSession,
    *,
    slot: Slot,
    party_id: str,
    status: ReservationStatus,
    waitlist_entry_id: uuid.UUID | None = None,
) -> Reservation:
    """Stage an active reservation and take one seat on ``slot``."""
    if status not in ACTIVE_RESERVATION_STATUSES:
        raise ValueError("New reservations must be pending or confirmed")
    occupy_seat(slot)
    now = utcnow()
    reservation = Reservation(
        id=uuid.uuid4(),
        slot_id=slot.id,
        party_id=party_id,
        status=status,
        waitlist_entry_id=waitlist_entry_id,
        confirmed_at=now if status is ReservationStatus.CONFIRMED else None,
    )
    session.add(reservation)
    return reservation


def confirm(reservation: Reservation) -> Reservation:
    ensure_transition(reservation, ReservationStatus.CONFIRMED)
    reservation.status = ReservationStatus.CONFIRMED
    reservation.confirmed_at = utcnow()
    return reservation


def cancel(reservation: Reservation, slot: Slot, *, reason: str | None = None) -> Reservation:
    """Cancel an active reservation and free its seat."""
    ensure_transition(reservation, ReservationStatus.CANCELLED)
    reservation.status = ReservationStatus.CANCELLED
    reservation.cancelled_at = utcnow()
    reservation.cancel_reason = reason
    release_seat(slot)
    return reservation


def reject(reservation: Reservation, slot: Slot, *, reason: str | None = None) -> Reservation:
    ensure_transition(reservation, ReservationStatus.REJECTED)
    reservation.status = ReservationStatus.REJECTED
    reservation.rejected_at = utcnow()
    reservation.cancel_reason = reason
    release_seat(slot)
    return reservation


async def load_reservation(
    session: AsyncSession, reservation_id: uuid.UUID
) -> Reservation:
    reservation = await session.get(Reservation, reservation_id, populate_existing=True)
    if reservation is None:
        raise errors.NotFoundError(
            "Reservation not found", reservation_id=str(reservation_id)
        )
    return reservation


async def find_active(
    session: AsyncSession, *, slot_id: uuid.UUID, party_id: str
) -> Reservation | None:
    result = await session.execute(
        select(Reservation).where(
            Reservation.slot_id == slot_id,
            Reservation.party_id == party_id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
    )
    return result.scalars().first()


async def list_for_slot(
    session: AsyncSession, slot_id: uuid.UUID, *, active_only: bool = False
) -> Sequence[Reservation]:
    stmt = select(Reservation).where(Reservation.slot_id == slot_id)
    if active_only:
        stmt = stmt.where(Reservation.status.in_(ACTIVE_RESERVATION_STATUSES))
    result = await session.execute(
        stmt.order_by(Reservation.created_at.asc(), Reservation.id.asc())
    )
    return result.scalars().all()


async def list_for_party(
    session: AsyncSession,
    party_id: str,
    *,
    status: ReservationStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[Reservation]:
    stmt = select(Reservation).where(Reservation.party_id == party_id)
    if status is not None:
        stmt = stmt.where(Reservation.status == status)
    stmt = (
        stmt.order_by(Reservation.created_at.desc(), Reservation.id.asc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 1), 100))
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def count_active(session: AsyncSession, slot_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Reservation)
        .where(
            Reservation.slot_id == slot_id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
    )
    return result.scalar_one()
