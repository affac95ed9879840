"""Waitlist queue management for full slots."""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.core import errors
from agenda_engine.models import (
    ACTIVE_WAITLIST_STATUSES,
    Agenda,
    Slot,
    WaitlistEntry,
    WaitlistStatus,
)
from agenda_engine.models.mixins import utcnow


def _active_queue_query(slot_id: uuid.UUID):
    return (
        select(WaitlistEntry)
        .where(
            WaitlistEntry.slot_id == slot_id,
            WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
        )
        .order_by(
            WaitlistEntry.position.asc(),
            WaitlistEntry.created_at.asc(),
            WaitlistEntry.id.asc(),
        )
    )


async def load_entry(session: AsyncSession, entry_id: uuid.UUID) -> WaitlistEntry:
    entry = await session.get(WaitlistEntry, entry_id, populate_existing=True)
    if entry is None:
        raise errors.NotFoundError("Waitlist entry not found", entry_id=str(entry_id))
    return entry


async def active_queue(
    session: AsyncSession, slot_id: uuid.UUID
) -> Sequence[WaitlistEntry]:
    """Return waiting and notified entries in queue order."""
    result = await session.execute(_active_queue_query(slot_id))
    return result.scalars().all()


async def head_waiting(
    session: AsyncSession, slot_id: uuid.UUID
) -> WaitlistEntry | None:
    """Lowest-position entry that has not been offered a seat yet."""
    stmt = _active_queue_query(slot_id).where(
        WaitlistEntry.status == WaitlistStatus.WAITING
    )
    result = await session.execute(stmt.limit(1))
    return result.scalars().first()


async def next_position(session: AsyncSession, slot_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.max(WaitlistEntry.position)).where(
            WaitlistEntry.slot_id == slot_id,
            WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
        )
    )
    current = result.scalar_one_or_none()
    return (current or 0) + 1


async def enqueue(
    session: AsyncSession, *, slot_id: uuid.UUID, party_id: str
) -> WaitlistEntry:
    """Append ``party_id`` at the tail of the slot's queue."""
    entry = WaitlistEntry(
        id=uuid.uuid4(),
        slot_id=slot_id,
        party_id=party_id,
        position=await next_position(session, slot_id),
        status=WaitlistStatus.WAITING,
    )
    session.add(entry)
    await session.flush()
    return entry


async def rerank(session: AsyncSession, slot_id: uuid.UUID) -> list[WaitlistEntry]:
    """Renumber active entries 1..n keeping their relative order."""
    await session.flush()
    queue = list(await active_queue(session, slot_id))
    for index, entry in enumerate(queue, start=1):
        if entry.position != index:
            entry.position = index
    await session.flush()
    return queue


def resolve(
    entry: WaitlistEntry,
    status: WaitlistStatus,
    *,
    reason: str | None = None,
) -> WaitlistEntry:
    """Move an entry out of the active set."""
    if status in ACTIVE_WAITLIST_STATUSES:
        raise ValueError("resolve() requires a terminal waitlist status")
    entry.status = status
    entry.position = None
    entry.resolved_at = utcnow()
    if reason is not None:
        entry.reason = reason
    return entry


async def find_active(
    session: AsyncSession, *, slot_id: uuid.UUID, party_id: str
) -> WaitlistEntry | None:
    result = await session.execute(
        select(WaitlistEntry).where(
            WaitlistEntry.slot_id == slot_id,
            WaitlistEntry.party_id == party_id,
            WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
        )
    )
    return result.scalars().first()


async def find_by_reservation(
    session: AsyncSession, reservation_id: uuid.UUID
) -> WaitlistEntry | None:
    result = await session.execute(
        select(WaitlistEntry).where(WaitlistEntry.reservation_id == reservation_id)
    )
    return result.scalars().first()


async def list_for_party(
    session: AsyncSession,
    party_id: str,
    *,
    active_only: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[WaitlistEntry]:
    stmt = select(WaitlistEntry).where(WaitlistEntry.party_id == party_id)
    if active_only:
        stmt = stmt.where(WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES))
    stmt = (
        stmt.order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.id.asc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 1), 100))
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_for_announcer(
    session: AsyncSession,
    announcer_id: uuid.UUID,
    *,
    active_only: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[WaitlistEntry]:
    """Entries queued on any slot of the announcer's agendas, newest first."""
    stmt = (
        select(WaitlistEntry)
        .join(Slot, Slot.id == WaitlistEntry.slot_id)
        .join(Agenda, Agenda.id == Slot.agenda_id)
        .where(Agenda.owner_id == announcer_id)
    )
    if active_only:
        stmt = stmt.where(WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES))
    stmt = (
        stmt.order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.id.asc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 1), 100))
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_stale_offers(
    session: AsyncSession, *, now, limit: int = 100
) -> Sequence[tuple[uuid.UUID, uuid.UUID]]:
    """Return ``(entry_id, slot_id)`` pairs of offers whose window has passed."""
    result = await session.execute(
        select(WaitlistEntry.id, WaitlistEntry.slot_id)
        .where(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED,
            WaitlistEntry.expires_at.is_not(None),
            WaitlistEntry.expires_at <= now,
        )
        .order_by(WaitlistEntry.expires_at.asc())
        .limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()]


async def count_active(session: AsyncSession, slot_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(WaitlistEntry)
        .where(
            WaitlistEntry.slot_id == slot_id,
            WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
        )
    )
    return result.scalar_one()
