"""Reservation cancellation and owner approval endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends

from agenda_engine.api import deps
from agenda_engine.api.errors import http_error
from agenda_engine.core import errors
from agenda_engine.schemas.booking import OkResponse, ReservationRead, ok_response
from agenda_engine.services import notification_service
from agenda_engine.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/reservations")


@router.delete(
    "/{reservation_id}", response_model=OkResponse, summary="Cancel reservation"
)
async def cancel_reservation(
    reservation_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    background_tasks: BackgroundTasks,
) -> OkResponse:
    try:
        result = await scheduler.cancel_reservation(reservation_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    notification_service.schedule_notifications(background_tasks, result.all_notifications())
    return ok_response(result)


@router.post(
    "/{reservation_id}/confirm",
    response_model=ReservationRead,
    summary="Confirm a pending reservation",
)
async def confirm_reservation(
    reservation_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    background_tasks: BackgroundTasks,
) -> ReservationRead:
    try:
        result = await scheduler.confirm_reservation(reservation_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    notification_service.schedule_notifications(background_tasks, result.all_notifications())
    return ReservationRead.model_validate(result.reservation)


@router.post(
    "/{reservation_id}/reject",
    response_model=OkResponse,
    summary="Reject a pending reservation",
)
async def reject_reservation(
    reservation_id: uuid.UUID,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
    background_tasks: BackgroundTasks,
) -> OkResponse:
    try:
        result = await scheduler.reject_reservation(reservation_id, actor_id=actor_id)
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    notification_service.schedule_notifications(background_tasks, result.all_notifications())
    return ok_response(result)
