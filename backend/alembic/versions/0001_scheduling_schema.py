"""Scheduling schema: agendas, slots, reservations and waitlist.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE_RESERVATION = sa.text("status IN ('pending', 'confirmed')")
_ACTIVE_WAITLIST = sa.text("status IN ('waiting', 'notified')")
_NOTIFIED_WAITLIST = sa.text("status = 'notified'")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    agenda_type = sa.Enum("class", "course", "service", name="agenda_type")
    agenda_status = sa.Enum("active", "archived", name="agenda_status")
    promotion_policy = sa.Enum("auto", "offer", "manual", name="promotion_policy")
    slot_status = sa.Enum("open", "full", "cancelled", name="slot_status")
    reservation_status = sa.Enum(
        "pending", "confirmed", "cancelled", "rejected", name="reservation_status"
    )
    waitlist_status = sa.Enum(
        "waiting", "notified", "promoted", "cancelled", "expired", name="waitlist_status"
    )

    op.create_table(
        "agendas",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("service_ref", sa.String(length=120), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("agenda_type", agenda_type, nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("capacity_per_slot", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2)),
        sa.Column("status", agenda_status, nullable=False),
        sa.Column("promotion_policy", promotion_policy, nullable=False),
        sa.Column("requires_approval", sa.Boolean(), nullable=False),
        sa.Column("offer_ttl_minutes", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint("capacity_per_slot >= 1", name="ck_agenda_capacity"),
        sa.CheckConstraint("duration_minutes > 0", name="ck_agenda_duration"),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_agenda_price"),
    )
    op.create_index("ix_agendas_owner", "agendas", ["owner_id"])
    op.create_index("ix_agendas_status", "agendas", ["status"])

    op.create_table(
        "agenda_slots",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "agenda_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("agendas.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("filled", sa.Integer(), nullable=False),
        sa.Column("status", slot_status, nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("start_at < end_at", name="ck_slot_time_order"),
        sa.CheckConstraint("capacity >= 1", name="ck_slot_capacity"),
        sa.CheckConstraint(
            "filled >= 0 AND filled <= capacity", name="ck_slot_filled_bounds"
        ),
    )
    op.create_index(
        "ix_agenda_slots_agenda_start", "agenda_slots", ["agenda_id", "start_at"]
    )

    op.create_table(
        "slot_reservations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "slot_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("agenda_slots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("party_id", sa.String(length=120), nullable=False),
        sa.Column("status", reservation_status, nullable=False),
        sa.Column("waitlist_entry_id", sa.Uuid(as_uuid=True)),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("rejected_at", sa.DateTime(timezone=True)),
        sa.Column("cancel_reason", sa.String(length=255)),
        *_timestamps(),
    )
    op.create_index("ix_slot_reservations_slot", "slot_reservations", ["slot_id"])
    op.create_index("ix_slot_reservations_party", "slot_reservations", ["party_id"])
    op.create_index(
        "ux_slot_reservations_active_party",
        "slot_reservations",
        ["slot_id", "party_id"],
        unique=True,
        postgresql_where=_ACTIVE_RESERVATION,
        sqlite_where=_ACTIVE_RESERVATION,
    )

    op.create_table(
        "slot_waitlist_entries",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "slot_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("agenda_slots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("party_id", sa.String(length=120), nullable=False),
        sa.Column("position", sa.Integer()),
        sa.Column("status", waitlist_status, nullable=False),
        sa.Column(
            "reservation_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("slot_reservations.id", ondelete="SET NULL"),
        ),
        sa.Column("notified_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("reason", sa.String(length=255)),
        *_timestamps(),
        sa.CheckConstraint(
            "position IS NULL OR position >= 1", name="ck_waitlist_position"
        ),
    )
    op.create_index(
        "ix_slot_waitlist_slot_position",
        "slot_waitlist_entries",
        ["slot_id", "position"],
    )
    op.create_index("ix_slot_waitlist_party", "slot_waitlist_entries", ["party_id"])
    op.create_index(
        "ix_slot_waitlist_notified_expiry",
        "slot_waitlist_entries",
        ["expires_at"],
        postgresql_where=_NOTIFIED_WAITLIST,
        sqlite_where=_NOTIFIED_WAITLIST,
    )
    op.create_index(
        "ux_slot_waitlist_active_party",
        "slot_waitlist_entries",
        ["slot_id", "party_id"],
        unique=True,
        postgresql_where=_ACTIVE_WAITLIST,
        sqlite_where=_ACTIVE_WAITLIST,
    )

    op.create_table(
        "announcer_members",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("announcer_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=120), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("announcer_id", "user_id", name="uq_announcer_member"),
    )
    op.create_index(
        "ix_announcer_members_announcer_id", "announcer_members", ["announcer_id"]
    )
    op.create_index("ix_announcer_members_user_id", "announcer_members", ["user_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("actor_id", sa.String(length=120)),
        sa.Column("slot_id", sa.Uuid(as_uuid=True)),
        sa.Column("description", sa.String(length=1024)),
        sa.Column("payload", sa.JSON()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_slot_id", "audit_events", ["slot_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("announcer_members")
    op.drop_table("slot_waitlist_entries")
    op.drop_table("slot_reservations")
    op.drop_table("agenda_slots")
    op.drop_table("agendas")
    bind = op.get_bind()
    for enum_name in (
        "waitlist_status",
        "reservation_status",
        "slot_status",
        "promotion_policy",
        "agenda_status",
        "agenda_type",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
