"""Helper utilities for recording audit events."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.models.audit_event import AuditEvent


def record_event(
    session: AsyncSession,
    *,
    event_type: str,
    actor_id: str | None = None,
    slot_id: uuid.UUID | None = None,
    description: str | None = None,
    payload: dict[str, Any] | None = None,
) -> AuditEvent:
    """Stage an audit event in the caller's unit of work.

    The event is committed (or rolled back) together with the change it
    describes.
    """
    event = AuditEvent(
        event_type=event_type,
        actor_id=actor_id,
        slot_id=slot_id,
        description=description,
        payload=payload,
    )
    session.add(event)
    return event
