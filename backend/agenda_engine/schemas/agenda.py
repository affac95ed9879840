"""Schemas for agendas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from agenda_engine.models.agenda import AgendaStatus, AgendaType, PromotionPolicy


class AgendaCreate(BaseModel):
    """Payload for creating an agenda.

    Numeric bounds are enforced by the agenda service so that direct callers
    get the same errors as HTTP clients.
    """

    owner_id: uuid.UUID | None = None
    service_ref: str = Field(min_length=1, max_length=120)
    title: str = Field(max_length=255)
    description: str | None = None
    agenda_type: AgendaType = Field(alias="type")
    duration_minutes: int = 60
    capacity_per_slot: int = 1
    price: Decimal | None = None
    promotion_policy: PromotionPolicy = PromotionPolicy.AUTO
    requires_approval: bool = False
    offer_ttl_minutes: int | None = None

    model_config = ConfigDict(populate_by_name=True)


class AgendaUpdate(BaseModel):
    """Mutable agenda fields."""

    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    duration_minutes: int | None = None
    capacity_per_slot: int | None = None
    price: Decimal | None = None
    promotion_policy: PromotionPolicy | None = None
    requires_approval: bool | None = None
    offer_ttl_minutes: int | None = None


class AgendaRead(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    service_ref: str
    title: str
    description: str | None = None
    agenda_type: AgendaType = Field(serialization_alias="type")
    duration_minutes: int
    capacity_per_slot: int
    price: Decimal | None = None
    status: AgendaStatus
    promotion_policy: PromotionPolicy
    requires_approval: bool
    offer_ttl_minutes: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AgendaListResponse(BaseModel):
    items: list[AgendaRead]
    total: int
