"""Concrete bookable occurrences of an agenda."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
)
from sqlalchemy.orm import Mapped, mapped_column

from agenda_engine.db.base import Base
from agenda_engine.models.mixins import TimestampMixin, enum_column


class SlotStatus(str, enum.Enum):
    """Booking state derived from fill count and cancellation."""

    OPEN = "open"
    FULL = "full"
    CANCELLED = "cancelled"


def derive_slot_status(
    *, filled: int, capacity: int, cancelled: bool
) -> SlotStatus:
    if cancelled:
        return SlotStatus.CANCELLED
    if filled >= capacity:
        return SlotStatus.FULL
    return SlotStatus.OPEN


class Slot(TimestampMixin, Base):
    """One time occurrence of an agenda with its own capacity tracking."""

    __tablename__ = "agenda_slots"
    __table_args__ = (
        Index("ix_agenda_slots_agenda_start", "agenda_id", "start_at"),
        CheckConstraint("start_at < end_at", name="ck_slot_time_order"),
        CheckConstraint("capacity >= 1", name="ck_slot_capacity"),
        CheckConstraint(
            "filled >= 0 AND filled <= capacity", name="ck_slot_filled_bounds"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    agenda_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("agendas.id", ondelete="CASCADE"), nullable=False
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    filled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[SlotStatus] = mapped_column(
        enum_column(SlotStatus, "slot_status"),
        nullable=False,
        default=SlotStatus.OPEN,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def remaining(self) -> int:
        if self.is_cancelled:
            return 0
        return max(self.capacity - self.filled, 0)

    def recompute_status(self) -> SlotStatus:
        """Write the status implied by (filled, capacity, cancelled)."""
        self.status = derive_slot_status(
            filled=self.filled,
            capacity=self.capacity,
            cancelled=self.is_cancelled,
        )
        return self.status
