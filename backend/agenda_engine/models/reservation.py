"""Reservation models."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from agenda_engine.db.base import Base
from agenda_engine.models.mixins import TimestampMixin, enum_column


class ReservationStatus(str, enum.Enum):
    """Lifecycle states for slot reservations."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


ACTIVE_RESERVATION_STATUSES = frozenset(
    {ReservationStatus.PENDING, ReservationStatus.CONFIRMED}
)


class Reservation(TimestampMixin, Base):
    """A booking by one party against one slot."""

    __tablename__ = "slot_reservations"
    __table_args__ = (
        Index("ix_slot_reservations_slot", "slot_id"),
        Index("ix_slot_reservations_party", "party_id"),
        Index(
            "ux_slot_reservations_active_party",
            "slot_id",
            "party_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'confirmed')"),
            sqlite_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    slot_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("agenda_slots.id", ondelete="CASCADE"), nullable=False
    )
    party_id: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        enum_column(ReservationStatus, "reservation_status"),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    waitlist_entry_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_reason: Mapped[str | None] = mapped_column(String(255))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RESERVATION_STATUSES
