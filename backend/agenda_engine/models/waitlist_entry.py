"""Waitlist models for slot overflow."""

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
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from agenda_engine.db.base import Base
from agenda_engine.models.mixins import TimestampMixin, enum_column


class WaitlistStatus(str, enum.Enum):
    """Lifecycle of waitlist entries."""

    WAITING = "waiting"
    NOTIFIED = "notified"
    PROMOTED = "promoted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


ACTIVE_WAITLIST_STATUSES = frozenset(
    {WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED}
)


class WaitlistEntry(TimestampMixin, Base):
    """A request queued because the slot was full when it arrived."""

    __tablename__ = "slot_waitlist_entries"
    __table_args__ = (
        Index("ix_slot_waitlist_slot_position", "slot_id", "position"),
        Index("ix_slot_waitlist_party", "party_id"),
        Index(
            "ix_slot_waitlist_notified_expiry",
            "expires_at",
            postgresql_where=text("status = 'notified'"),
            sqlite_where=text("status = 'notified'"),
        ),
        Index(
            "ux_slot_waitlist_active_party",
            "slot_id",
            "party_id",
            unique=True,
            postgresql_where=text("status IN ('waiting', 'notified')"),
            sqlite_where=text("status IN ('waiting', 'notified')"),
        ),
        CheckConstraint(
            "position IS NULL OR position >= 1", name="ck_waitlist_position"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    slot_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("agenda_slots.id", ondelete="CASCADE"), nullable=False
    )
    party_id: Mapped[str] = mapped_column(String(120), nullable=False)
    position: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[WaitlistStatus] = mapped_column(
        enum_column(WaitlistStatus, "waitlist_status"),
        nullable=False,
        default=WaitlistStatus.WAITING,
    )
    reservation_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("slot_reservations.id", ondelete="SET NULL"), nullable=True
    )
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reason: Mapped[str | None] = mapped_column(String(255))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_WAITLIST_STATUSES
