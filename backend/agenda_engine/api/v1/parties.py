"""Per-party booking listings."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from agenda_engine.api import deps
from agenda_engine.api.errors import http_error
from agenda_engine.core import errors
from agenda_engine.schemas.booking import ReservationRead, WaitlistEntryRead
from agenda_engine.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/parties")


def _require_self(actor_id: str, party_id: str) -> None:
    if actor_id != party_id:
        raise HTTPException(
            status.HTTP_403_FORBIDDEN, detail="Parties may only list their own bookings"
        )


@router.get(
    "/{party_id}/reservations",
    response_model=list[ReservationRead],
    summary="List a party's reservations",
)
async def list_party_reservations(
    party_id: str,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> list[ReservationRead]:
    _require_self(actor_id, party_id)
    try:
        reservations = await scheduler.list_party_reservations(
            party_id, limit=limit, offset=offset
        )
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return [ReservationRead.model_validate(item) for item in reservations]


@router.get(
    "/{party_id}/waitlist",
    response_model=list[WaitlistEntryRead],
    summary="List a party's waitlist entries",
)
async def list_party_waitlist(
    party_id: str,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    active_only: bool = Query(default=True),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> list[WaitlistEntryRead]:
    _require_self(actor_id, party_id)
    try:
        entries = await scheduler.list_party_waitlist(
            party_id, active_only=active_only, limit=limit, offset=offset
        )
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return [WaitlistEntryRead.model_validate(item) for item in entries]
