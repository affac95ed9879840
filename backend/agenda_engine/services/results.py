"""Outcomes returned by scheduling operations."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field

from agenda_engine.models import Reservation, Slot, WaitlistEntry
from agenda_engine.services.notification_service import NotificationEvent


class BookingKind(str, enum.Enum):
    RESERVED = "reserved"
    WAITLISTED = "waitlisted"


@dataclass
class PromotionResult:
    entry: WaitlistEntry
    reservation: Reservation
    notifications: list[NotificationEvent] = field(default_factory=list)


@dataclass
class BookingResult:
    kind: BookingKind
    reservation: Reservation | None = None
    entry: WaitlistEntry | None = None
    notifications: list[NotificationEvent] = field(default_factory=list)

    @property
    def position(self) -> int | None:
        return self.entry.position if self.entry is not None else None


@dataclass
class ReleaseResult:
    """A reservation or queue place changed state, possibly promoting others."""

    reservation: Reservation | None = None
    entry: WaitlistEntry | None = None
    promotions: list[PromotionResult] = field(default_factory=list)
    notifications: list[NotificationEvent] = field(default_factory=list)

    def all_notifications(self) -> list[NotificationEvent]:
        events = list(self.notifications)
        for promotion in self.promotions:
            events.extend(promotion.notifications)
        return events


@dataclass
class SlotCancellation:
    cancelled_reservations: list[uuid.UUID] = field(default_factory=list)
    denied_waitlist_entries: list[uuid.UUID] = field(default_factory=list)
    notifications: list[NotificationEvent] = field(default_factory=list)


@dataclass
class SlotSnapshot:
    slot: Slot
    reservations: list[Reservation]
    waitlist: list[WaitlistEntry]


@dataclass
class OfferSweep:
    expired: list[uuid.UUID] = field(default_factory=list)
    notifications: list[NotificationEvent] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.expired)
