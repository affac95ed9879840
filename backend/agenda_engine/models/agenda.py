"""Agenda models: bookable offerings owned by an announcer."""

from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from agenda_engine.db.base import Base
from agenda_engine.models.mixins import TimestampMixin, enum_column


class AgendaType(str, enum.Enum):
    """Kinds of offerings an announcer can schedule."""

    CLASS = "class"
    COURSE = "course"
    SERVICE = "service"


class AgendaStatus(str, enum.Enum):
    """Lifecycle of an agenda."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class PromotionPolicy(str, enum.Enum):
    """How freed capacity is handed to the waitlist."""

    AUTO = "auto"
    OFFER = "offer"
    MANUAL = "manual"


class Agenda(TimestampMixin, Base):
    """A bookable offering template (class, course or service)."""

    __tablename__ = "agendas"
    __table_args__ = (
        Index("ix_agendas_owner", "owner_id"),
        Index("ix_agendas_status", "status"),
        CheckConstraint("capacity_per_slot >= 1", name="ck_agenda_capacity"),
        CheckConstraint("duration_minutes > 0", name="ck_agenda_duration"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_agenda_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    service_ref: Mapped[str] = mapped_column(String(120), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    agenda_type: Mapped[AgendaType] = mapped_column(
        enum_column(AgendaType, "agenda_type"), nullable=False
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    capacity_per_slot: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    status: Mapped[AgendaStatus] = mapped_column(
        enum_column(AgendaStatus, "agenda_status"),
        nullable=False,
        default=AgendaStatus.ACTIVE,
    )
    promotion_policy: Mapped[PromotionPolicy] = mapped_column(
        enum_column(PromotionPolicy, "promotion_policy"),
        nullable=False,
        default=PromotionPolicy.AUTO,
    )
    requires_approval: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    offer_ttl_minutes: Mapped[int | None] = mapped_column(Integer)

    @property
    def is_archived(self) -> bool:
        return self.status is AgendaStatus.ARCHIVED
