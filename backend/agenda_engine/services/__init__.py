"""Service layer exports."""
from agenda_engine.services import (
    agenda_service,
    booking_service,
    promotion_service,
    reservation_service,
    slot_service,
    waitlist_service,
)
from agenda_engine.services.scheduling_service import SchedulingService

__all__ = [
    "SchedulingService",
    "agenda_service",
    "booking_service",
    "promotion_service",
    "reservation_service",
    "slot_service",
    "waitlist_service",
]
