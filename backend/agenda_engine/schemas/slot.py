"""Schemas for slots and their snapshots."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from agenda_engine.models.slot import SlotStatus
from agenda_engine.schemas.booking import ReservationRead, WaitlistEntryRead


class SlotCreate(BaseModel):
    start_at: datetime
    end_at: datetime
    capacity_override: int | None = None


class SlotRead(BaseModel):
    id: uuid.UUID
    agenda_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    capacity: int
    filled: int
    status: SlotStatus
    cancelled_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SlotSnapshotRead(BaseModel):
    """Read-only view of a slot with its reservations and ordered waitlist."""

    id: uuid.UUID
    agenda_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    capacity: int
    filled: int
    status: SlotStatus
    reservations: list[ReservationRead]
    waitlist: list[WaitlistEntryRead]


class SlotCancellationRead(BaseModel):
    cancelled_reservations: list[uuid.UUID]
    denied_waitlist_entries: list[uuid.UUID]


class SlotCountsRead(BaseModel):
    slot_id: uuid.UUID
    active_reservations: int
    active_waitlist: int


def snapshot_read(snapshot: Any) -> SlotSnapshotRead:
    slot = snapshot.slot
    return SlotSnapshotRead(
        id=slot.id,
        agenda_id=slot.agenda_id,
        start_at=slot.start_at,
        end_at=slot.end_at,
        capacity=slot.capacity,
        filled=slot.filled,
        status=slot.status,
        reservations=[ReservationRead.model_validate(item) for item in snapshot.reservations],
        waitlist=[WaitlistEntryRead.model_validate(item) for item in snapshot.waitlist],
    )
