"""Ownership checks against the announcer membership projection."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda_engine.core import errors
from agenda_engine.models import Agenda, AnnouncerMember


async def actor_owns_announcer(
    session: AsyncSession, *, actor_id: str | None, announcer_id
) -> bool:
    if not actor_id:
        return False
    if actor_id == str(announcer_id):
        return True
    result = await session.execute(
        select(AnnouncerMember.id).where(
            AnnouncerMember.announcer_id == announcer_id,
            AnnouncerMember.user_id == actor_id,
        )
    )
    return result.first() is not None


async def actor_owns_agenda(
    session: AsyncSession, *, actor_id: str | None, agenda: Agenda
) -> bool:
    return await actor_owns_announcer(
        session, actor_id=actor_id, announcer_id=agenda.owner_id
    )


async def ensure_agenda_owner(
    session: AsyncSession, *, actor_id: str | None, agenda: Agenda
) -> None:
    if not await actor_owns_agenda(session, actor_id=actor_id, agenda=agenda):
        raise errors.ForbiddenError(
            "Actor does not manage this agenda", agenda_id=str(agenda.id)
        )
