"""Agenda management services."""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.core import errors
from agenda_engine.models import (
    Agenda,
    AgendaStatus,
    AgendaType,
    Slot,
    SlotStatus,
)
from agenda_engine.schemas.agenda import AgendaCreate, AgendaUpdate
from agenda_engine.services import access_service, audit_service

_MIN_TITLE_LENGTH = 3


def _validate_title(title: str) -> None:
    if len(title.strip()) < _MIN_TITLE_LENGTH:
        raise errors.ValidationError(
            f"Title must have at least {_MIN_TITLE_LENGTH} characters"
        )


def _validate_duration(duration_minutes: int) -> None:
    if duration_minutes <= 0:
        raise errors.ValidationError("duration_minutes must be greater than zero")


def _validate_capacity(capacity: int) -> None:
    if capacity < 1:
        raise errors.ValidationError("capacity_per_slot must be at least 1")


def _validate_price(price: Decimal | None) -> None:
    if price is not None and price < 0:
        raise errors.ValidationError("price cannot be negative")


def _validate_offer_ttl(offer_ttl_minutes: int | None) -> None:
    if offer_ttl_minutes is not None and offer_ttl_minutes <= 0:
        raise errors.ValidationError("offer_ttl_minutes must be greater than zero")


async def load_agenda(
    session: AsyncSession, agenda_id: uuid.UUID, *, for_update: bool = False
) -> Agenda:
    stmt = select(Agenda).where(Agenda.id == agenda_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    agenda = result.scalar_one_or_none()
    if agenda is None:
        raise errors.NotFoundError("Agenda not found", agenda_id=str(agenda_id))
    return agenda


async def create_agenda(
    session: AsyncSession,
    *,
    actor_id: str,
    payload: AgendaCreate,
) -> Agenda:
    """Create an agenda owned by ``payload.owner_id`` (the actor by default)."""
    _validate_title(payload.title)
    _validate_duration(payload.duration_minutes)
    _validate_capacity(payload.capacity_per_slot)
    _validate_price(payload.price)
    _validate_offer_ttl(payload.offer_ttl_minutes)

    owner_id = payload.owner_id
    if owner_id is None:
        try:
            owner_id = uuid.UUID(actor_id)
        except (ValueError, TypeError) as exc:
            raise errors.ValidationError(
                "owner_id is required when the actor is not an announcer account"
            ) from exc

    if not await access_service.actor_owns_announcer(
        session, actor_id=actor_id, announcer_id=owner_id
    ):
        raise errors.ForbiddenError("Actor does not manage this announcer account")

    agenda = Agenda(
        owner_id=owner_id,
        service_ref=payload.service_ref,
        title=payload.title.strip(),
        description=payload.description,
        agenda_type=payload.agenda_type,
        duration_minutes=payload.duration_minutes,
        capacity_per_slot=payload.capacity_per_slot,
        price=payload.price,
        status=AgendaStatus.ACTIVE,
        promotion_policy=payload.promotion_policy,
        requires_approval=payload.requires_approval,
        offer_ttl_minutes=payload.offer_ttl_minutes,
    )
    session.add(agenda)
    await session.flush()
    audit_service.record_event(
        session,
        event_type="agenda.created",
        actor_id=actor_id,
        description="Agenda created",
        payload={"agenda_id": str(agenda.id)},
    )
    return agenda


async def update_agenda(
    session: AsyncSession,
    *,
    agenda: Agenda,
    actor_id: str,
    payload: AgendaUpdate,
) -> Agenda:
    await access_service.ensure_agenda_owner(session, actor_id=actor_id, agenda=agenda)
    if agenda.is_archived:
        raise errors.ConflictError("Archived agendas cannot be modified")

    changes = payload.model_dump(exclude_unset=True)
    if "title" in changes and changes["title"] is not None:
        _validate_title(changes["title"])
        changes["title"] = changes["title"].strip()
    if changes.get("duration_minutes") is not None:
        _validate_duration(changes["duration_minutes"])
    if changes.get("capacity_per_slot") is not None:
        _validate_capacity(changes["capacity_per_slot"])
        largest = await _largest_live_slot_capacity(session, agenda.id)
        if largest is not None and changes["capacity_per_slot"] < largest:
            raise errors.ConflictError(
                "capacity_per_slot cannot drop below an existing slot's capacity",
                largest_slot_capacity=largest,
            )
    if "price" in changes:
        _validate_price(changes["price"])
    if "offer_ttl_minutes" in changes:
        _validate_offer_ttl(changes["offer_ttl_minutes"])

    for field_name, value in changes.items():
        if value is None and field_name not in {"description", "price", "offer_ttl_minutes"}:
            continue
        setattr(agenda, field_name, value)

    audit_service.record_event(
        session,
        event_type="agenda.updated",
        actor_id=actor_id,
        description="Agenda updated",
        payload={"agenda_id": str(agenda.id), "fields": sorted(changes)},
    )
    return agenda


async def archive_agenda(
    session: AsyncSession,
    *,
    agenda: Agenda,
    actor_id: str,
) -> Agenda:
    """Archive an agenda; its slots and bookings stay as history."""
    await access_service.ensure_agenda_owner(session, actor_id=actor_id, agenda=agenda)
    if agenda.is_archived:
        return agenda
    agenda.status = AgendaStatus.ARCHIVED
    audit_service.record_event(
        session,
        event_type="agenda.archived",
        actor_id=actor_id,
        description="Agenda archived",
        payload={"agenda_id": str(agenda.id)},
    )
    return agenda


async def list_agendas(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID | None = None,
    agenda_type: AgendaType | None = None,
    status: AgendaStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Agenda], int]:
    """Return agendas newest first with the unpaginated total."""
    stmt = select(Agenda)
    count_stmt = select(func.count()).select_from(Agenda)
    filters = []
    if owner_id is not None:
        filters.append(Agenda.owner_id == owner_id)
    if agenda_type is not None:
        filters.append(Agenda.agenda_type == agenda_type)
    if status is not None:
        filters.append(Agenda.status == status)
    if filters:
        stmt = stmt.where(*filters)
        count_stmt = count_stmt.where(*filters)

    stmt = (
        stmt.order_by(Agenda.created_at.desc(), Agenda.id.asc())
        .offset(max(offset, 0))
        .limit(min(max(limit, 1), 100))
    )
    result = await session.execute(stmt)
    total = (await session.execute(count_stmt)).scalar_one()
    return list(result.scalars().all()), total


async def _largest_live_slot_capacity(
    session: AsyncSession, agenda_id: uuid.UUID
) -> int | None:
    result = await session.execute(
        select(func.max(Slot.capacity)).where(
            Slot.agenda_id == agenda_id,
            Slot.status != SlotStatus.CANCELLED,
        )
    )
    return result.scalar_one_or_none()
