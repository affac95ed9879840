"""Users allowed to act on behalf of an announcer account."""

from __future__ import annotations

import uuid

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agenda_engine.db.base import Base
from agenda_engine.models.mixins import TimestampMixin


class AnnouncerMember(TimestampMixin, Base):
    """Links a user id to the announcer account it manages."""

    __tablename__ = "announcer_members"
    __table_args__ = (
        UniqueConstraint("announcer_id", "user_id", name="uq_announcer_member"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    announcer_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
