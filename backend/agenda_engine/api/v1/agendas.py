"""Agenda and slot publishing endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from agenda_engine.api import deps
from agenda_engine.api.errors import http_error
from agenda_engine.core import errors
from agenda_engine.models.agenda import AgendaStatus, AgendaType
from agenda_engine.schemas.agenda import (
    AgendaCreate,
    AgendaListResponse,
    AgendaRead,
    AgendaUpdate,
)
from agenda_engine.schemas.slot import SlotCreate, SlotRead
from agenda_engine.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/agendas")


@router.post(
    "",
    response_model=AgendaRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create agenda",
)
async def create_agenda(
    payload: AgendaCreate,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
) -> AgendaRead:
    try:
        agenda = await scheduler.create_agenda(actor_id=actor_id, payload=payload)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return AgendaRead.model_validate(agenda)


@router.get("", response_model=AgendaListResponse, summary="List agendas")
async def list_agendas(
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    owner_id: uuid.UUID | None = Query(default=None),
    agenda_type: AgendaType | None = Query(default=None, alias="type"),
    status_filter: AgendaStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> AgendaListResponse:
    try:
        items, total = await scheduler.list_agendas(
            owner_id=owner_id,
            agenda_type=agenda_type,
            status=status_filter,
            limit=limit,
            offset=offset,
        )
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return AgendaListResponse(
        items=[AgendaRead.model_validate(item) for item in items], total=total
    )


@router.get("/{agenda_id}", response_model=AgendaRead, summary="Get agenda")
async def get_agenda(
    agenda_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
) -> AgendaRead:
    try:
        agenda = await scheduler.get_agenda(agenda_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return AgendaRead.model_validate(agenda)


@router.patch("/{agenda_id}", response_model=AgendaRead, summary="Update agenda")
async def update_agenda(
    agenda_id: uuid.UUID,
    payload: AgendaUpdate,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
) -> AgendaRead:
    try:
        agenda = await scheduler.update_agenda(
            agenda_id, actor_id=actor_id, payload=payload
        )
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return AgendaRead.model_validate(agenda)


@router.post(
    "/{agenda_id}/archive", response_model=AgendaRead, summary="Archive agenda"
)
async def archive_agenda(
    agenda_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
) -> AgendaRead:
    try:
        agenda = await scheduler.archive_agenda(agenda_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return AgendaRead.model_validate(agenda)


@router.post(
    "/{agenda_id}/slots",
    response_model=SlotRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create slot",
)
async def create_slot(
    agenda_id: uuid.UUID,
    payload: SlotCreate,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
) -> SlotRead:
    try:
        slot = await scheduler.create_slot(
            agenda_id,
            actor_id=actor_id,
            start_at=payload.start_at,
            end_at=payload.end_at,
            capacity_override=payload.capacity_override,
        )
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return SlotRead.model_validate(slot)


@router.get(
    "/{agenda_id}/slots", response_model=list[SlotRead], summary="List agenda slots"
)
async def list_slots(
    agenda_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    include_closed: bool = Query(default=False),
) -> list[SlotRead]:
    try:
        slots = await scheduler.list_slots(agenda_id, include_closed=include_closed)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return [SlotRead.model_validate(slot) for slot in slots]
