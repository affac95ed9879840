"""Slot inspection, cancellation and promotion endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status

from agenda_engine.api import deps
from agenda_engine.api.errors import http_error
from agenda_engine.core import errors
from agenda_engine.schemas.booking import PromotionRead, promotion_read
from agenda_engine.schemas.slot import (
    SlotCancellationRead,
    SlotCountsRead,
    SlotSnapshotRead,
    snapshot_read,
)
from agenda_engine.services import notification_service
from agenda_engine.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/slots")


@router.get("/{slot_id}", response_model=SlotSnapshotRead, summary="Slot snapshot")
async def get_slot(
    slot_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
) -> SlotSnapshotRead:
    try:
        snapshot = await scheduler.list_slot(slot_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return snapshot_read(snapshot)


@router.get(
    "/{slot_id}/counts", response_model=SlotCountsRead, summary="Slot booking counts"
)
async def get_slot_counts(
    slot_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
) -> SlotCountsRead:
    try:
        reserved, waiting = await scheduler.slot_counts(slot_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return SlotCountsRead(
        slot_id=slot_id, active_reservations=reserved, active_waitlist=waiting
    )


@router.delete(
    "/{slot_id}", response_model=SlotCancellationRead, summary="Cancel slot"
)
async def cancel_slot(
    slot_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    background_tasks: BackgroundTasks,
) -> SlotCancellationRead:
    try:
        outcome = await scheduler.cancel_slot(slot_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    notification_service.schedule_notifications(background_tasks, outcome.notifications)
    return SlotCancellationRead(
        cancelled_reservations=outcome.cancelled_reservations,
        denied_waitlist_entries=outcome.denied_waitlist_entries,
    )


@router.post(
    "/{slot_id}/promote",
    response_model=PromotionRead,
    responses={204: {"description": "Nothing to promote"}},
    summary="Promote the waitlist head",
)
async def promote_next(
    slot_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    background_tasks: BackgroundTasks,
):
    try:
        result = await scheduler.promote_next(slot_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    notification_service.schedule_notifications(background_tasks, result.notifications)
    return promotion_read(result)
