"""Versioned API router."""

from fastapi import APIRouter

from . import (
    agendas,
    announcers,
    bookings,
    health,
    parties,
    reservations,
    slots,
    waitlist,
)

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(agendas.router, tags=["agendas"])
router.include_router(slots.router, tags=["slots"])
router.include_router(bookings.router, tags=["bookings"])
router.include_router(reservations.router, tags=["reservations"])
router.include_router(waitlist.router, tags=["waitlist"])
router.include_router(parties.router, tags=["parties"])
router.include_router(announcers.router, tags=["announcers"])

__all__ = ["router"]
