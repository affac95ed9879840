"""Booking endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

from agenda_engine.api import deps
from agenda_engine.api.errors import http_error
from agenda_engine.core import errors
from agenda_engine.core.config import get_settings
from agenda_engine.schemas.booking import BookingRequest, BookingResponse, booking_response
from agenda_engine.services.scheduling_service import SchedulingService

router = APIRouter()

_settings = get_settings()


def _parse_rate(value: str, *, fallback: tuple[int, int]) -> tuple[int, int]:
    try:
        count_str, window_str = value.split("/", 1)
        count = int(count_str.strip())
    except ValueError:
        return fallback
    window = window_str.strip().lower()
    seconds_map = {
        "second": 1,
        "seconds": 1,
        "minute": 60,
        "minutes": 60,
        "hour": 3600,
        "hours": 3600,
        "day": 86400,
        "days": 86400,
    }
    seconds = seconds_map.get(window, fallback[1])
    return count, seconds


def _rate_dependency(limit: tuple[int, int]):
    async def _dependency(request: Request, response: Response) -> None:
        if FastAPILimiter.redis is None:
            return None
        limiter = RateLimiter(times=limit[0], seconds=limit[1])
        await limiter(request, response)

    return Depends(_dependency)


_BOOKING_LIMIT = _parse_rate(_settings.rate_limit_booking, fallback=(20, 60))
_BOOKING_RATE_DEP = _rate_dependency(_BOOKING_LIMIT)


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a slot or join its waitlist",
    dependencies=[_BOOKING_RATE_DEP],
)
async def book_slot(
    payload: BookingRequest,
    scheduler: Annotated[SchedulingService, Depends(deps.get_scheduler)],
    actor_id: Annotated[str, Depends(deps.get_current_actor)],
) -> BookingResponse:
    try:
        result = await scheduler.book_slot(
            payload.slot_id, party_id=payload.party_id, actor_id=actor_id
        )
    except errors.SchedulingError as exc:
        raise http_error(exc) from exc
    return booking_response(result)
