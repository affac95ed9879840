"""Owner-side view of the queues across an announcer's agendas."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from agenda_engine.api import deps
from agenda_engine.api.errors import http_error
from agenda_engine.core import errors
from agenda_engine.schemas.booking import WaitlistEntryRead
from agenda_engine.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/announcers")


@router.get(
    "/{announcer_id}/waitlist",
    response_model=list[WaitlistEntryRead],
    summary="List waitlist entries across an announcer's agendas",
)
async def list_announcer_waitlist(
    announcer_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    active_only: bool = Query(default=True),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> list[WaitlistEntryRead]:
    try:
        entries = await scheduler.list_owner_waitlist(
            announcer_id,
            actor_id=actor_id,
            active_only=active_only,
            limit=limit,
            offset=offset,
        )
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return [WaitlistEntryRead.model_validate(item) for item in entries]
