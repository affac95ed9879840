"""Schemas for bookings, reservations and waitlist entries."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from agenda_engine.models.reservation import ReservationStatus
from agenda_engine.models.waitlist_entry import WaitlistStatus


class BookingRequest(BaseModel):
    slot_id: uuid.UUID
    party_id: str = Field(min_length=1, max_length=120)


class BookingResponse(BaseModel):
    kind: Literal["reserved", "waitlisted"]
    reservation_id: uuid.UUID | None = None
    waitlist_entry_id: uuid.UUID | None = None
    position: int | None = None
    status: str


class ReservationRead(BaseModel):
    id: uuid.UUID
    slot_id: uuid.UUID
    party_id: str
    status: ReservationStatus
    waitlist_entry_id: uuid.UUID | None = None
    created_at: datetime
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    rejected_at: datetime | None = None
    cancel_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class WaitlistEntryRead(BaseModel):
    id: uuid.UUID
    slot_id: uuid.UUID
    party_id: str
    position: int | None = None
    status: WaitlistStatus
    reservation_id: uuid.UUID | None = None
    created_at: datetime
    notified_at: datetime | None = None
    expires_at: datetime | None = None
    resolved_at: datetime | None = None
    reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PromotionRead(BaseModel):
    promoted_entry_id: uuid.UUID
    reservation_id: uuid.UUID
    reservation_status: ReservationStatus
    entry_status: WaitlistStatus


class OkResponse(BaseModel):
    ok: bool = True
    promotions: list[PromotionRead] = Field(default_factory=list)


def promotion_read(result: Any) -> PromotionRead:
    """Build a :class:`PromotionRead` from a promotion outcome."""
    return PromotionRead(
        promoted_entry_id=result.entry.id,
        reservation_id=result.reservation.id,
        reservation_status=result.reservation.status,
        entry_status=result.entry.status,
    )


def booking_response(result: Any) -> BookingResponse:
    if result.reservation is not None:
        return BookingResponse(
            kind="reserved",
            reservation_id=result.reservation.id,
            status=result.reservation.status.value,
        )
    return BookingResponse(
        kind="waitlisted",
        waitlist_entry_id=result.entry.id,
        position=result.entry.position,
        status=result.entry.status.value,
    )


def ok_response(result: Any) -> OkResponse:
    return OkResponse(promotions=[promotion_read(item) for item in result.promotions])
