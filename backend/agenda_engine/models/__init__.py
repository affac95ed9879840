"""ORM models package export."""

from agenda_engine.models.agenda import (
    Agenda,
    AgendaStatus,
    AgendaType,
    PromotionPolicy,
)
from agenda_engine.models.announcer_member import AnnouncerMember
from agenda_engine.models.audit_event import AuditEvent
from agenda_engine.models.reservation import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
)
from agenda_engine.models.slot import Slot, SlotStatus, derive_slot_status
from agenda_engine.models.waitlist_entry import (
    ACTIVE_WAITLIST_STATUSES,
    WaitlistEntry,
    WaitlistStatus,
)

__all__ = [
    "ACTIVE_RESERVATION_STATUSES",
    "ACTIVE_WAITLIST_STATUSES",
    "Agenda",
    "AgendaStatus",
    "AgendaType",
    "AnnouncerMember",
    "AuditEvent",
    "PromotionPolicy",
    "Reservation",
    "ReservationStatus",
    "Slot",
    "SlotStatus",
    "WaitlistEntry",
    "WaitlistStatus",
    "derive_slot_status",
]
