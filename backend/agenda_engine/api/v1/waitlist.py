"""Waitlist promotion, offer acceptance and withdrawal endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends

from agenda_engine.api import deps
from agenda_engine.api.errors import http_error
from agenda_engine.core import errors
from agenda_engine.schemas.booking import OkResponse, PromotionRead, ok_response, promotion_read
from agenda_engine.services import notification_service
from agenda_engine.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/waitlist")


@router.post(
    "/{entry_id}/promote",
    response_model=PromotionRead,
    summary="Promote a specific waitlist entry",
)
async def promote_entry(
    entry_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    background_tasks: BackgroundTasks,
) -> PromotionRead:
    try:
        result = await scheduler.promote_explicit(entry_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    notification_service.schedule_notifications(background_tasks, result.notifications)
    return promotion_read(result)


@router.post(
    "/{entry_id}/accept",
    response_model=PromotionRead,
    summary="Accept a seat offered from the waitlist",
)
async def accept_offer(
    entry_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
) -> PromotionRead:
    try:
        result = await scheduler.accept_offer(entry_id, party_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return promotion_read(result)


@router.delete("/{entry_id}", response_model=OkResponse, summary="Leave the waitlist")
async def cancel_entry(
    entry_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    background_tasks: BackgroundTasks,
) -> OkResponse:
    try:
        result = await scheduler.cancel_waitlist_entry(entry_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    notification_service.schedule_notifications(background_tasks, result.all_notifications())
    return ok_response(result)
