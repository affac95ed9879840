"""Party notifications emitted by the scheduling engine.

Delivery belongs to an external notifier. The engine only builds events and
hands them off after the slot unit has committed, so nothing here may run
while a slot lock is held.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    """Events the notifier understands."""

    PROMOTED = "promoted"
    OFFERED = "offered"
    DENIED = "denied"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class NotificationEvent:
    party_id: str
    event: NotificationKind
    context: dict[str, Any] = field(default_factory=dict)

    def as_payload(self) -> dict[str, Any]:
        return {
            "party_id": self.party_id,
            "event": self.event.value,
            "context": self.context,
        }


def promoted(party_id: str, *, slot_id: Any, reservation_id: Any) -> NotificationEvent:
    return NotificationEvent(
        party_id=party_id,
        event=NotificationKind.PROMOTED,
        context={"slot_id": str(slot_id), "reservation_id": str(reservation_id)},
    )


def offered(
    party_id: str,
    *,
    slot_id: Any,
    entry_id: Any,
    reservation_id: Any,
    expires_at: Any,
) -> NotificationEvent:
    return NotificationEvent(
        party_id=party_id,
        event=NotificationKind.OFFERED,
        context={
            "slot_id": str(slot_id),
            "waitlist_entry_id": str(entry_id),
            "reservation_id": str(reservation_id),
            "expires_at": expires_at.isoformat() if expires_at else None,
        },
    )


def denied(party_id: str, *, slot_id: Any, entry_id: Any, reason: str) -> NotificationEvent:
    return NotificationEvent(
        party_id=party_id,
        event=NotificationKind.DENIED,
        context={
            "slot_id": str(slot_id),
            "waitlist_entry_id": str(entry_id),
            "reason": reason,
        },
    )


def cancelled(
    party_id: str, *, slot_id: Any, reservation_id: Any, reason: str
) -> NotificationEvent:
    return NotificationEvent(
        party_id=party_id,
        event=NotificationKind.CANCELLED,
        context={
            "slot_id": str(slot_id),
            "reservation_id": str(reservation_id),
            "reason": reason,
        },
    )


def schedule_notifications(
    background_tasks: BackgroundTasks, events: Iterable[NotificationEvent]
) -> None:
    """Queue notifications to be delivered after the response is sent."""
    pending = [event for event in events if event.party_id]
    if not pending:
        return
    for event in pending:
        background_tasks.add_task(deliver, event)


async def deliver_all(events: Iterable[NotificationEvent]) -> int:
    """Deliver notifications inline; used by jobs running outside a request."""
    delivered = 0
    for event in events:
        await deliver(event)
        delivered += 1
    return delivered


async def deliver(event: NotificationEvent) -> None:
    """Hand one event to the notifier; the log is the delivery channel."""
    logger.info(
        "Notify %s: %s %s", event.party_id, event.event.value, event.context
    )
