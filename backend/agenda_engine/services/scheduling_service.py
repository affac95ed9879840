"""Process-wide entry point for scheduling operations.

Every write runs as one unit: take the in-process lock for the slot (or the
agenda, for agenda-level writes), open a fresh session, lock the row, apply
the change and commit once. Nothing is dispatched to parties until the unit
has committed and the lock is released; callers receive the notifications
inside the returned result and hand them to the notifier.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agenda_engine.core import errors
from agenda_engine.core.config import Settings, get_settings
from agenda_engine.models import (
    Agenda,
    AgendaStatus,
    AgendaType,
    Reservation,
    Slot,
    WaitlistEntry,
    WaitlistStatus,
)
from agenda_engine.models.mixins import utcnow
from agenda_engine.schemas.agenda import AgendaCreate, AgendaUpdate
from agenda_engine.services import (
    access_service,
    agenda_service,
    booking_service,
    promotion_service,
    reservation_service,
    slot_service,
    waitlist_service,
)
from agenda_engine.services.results import (
    BookingResult,
    OfferSweep,
    PromotionResult,
    ReleaseResult,
    SlotCancellation,
    SlotSnapshot,
)
from agenda_engine.services.slot_locks import LockTimeout, SlotLockRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE = (LockTimeout, StaleDataError)


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate key" in message


class SchedulingService:
    """Serializes slot mutations and exposes the scheduling operations."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        *,
        settings: Settings | None = None,
        locks: SlotLockRegistry | None = None,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._settings = settings or get_settings()
        self._locks = locks if locks is not None else SlotLockRegistry()

    @property
    def offer_ttl_minutes(self) -> int:
        return self._settings.default_offer_ttl_minutes

    # -- unit of work -----------------------------------------------------

    async def _run_unit(
        self,
        lock_key: uuid.UUID | None,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``work`` inside the boundary for ``lock_key`` with bounded retry."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._settings.slot_lock_max_attempts),
                wait=wait_exponential(
                    multiplier=0.05, max=self._settings.slot_lock_backoff_max_seconds
                ),
                retry=retry_if_exception_type(_RETRYABLE),
                reraise=True,
            ):
                with attempt:
                    return await self._attempt_unit(lock_key, work)
        except _RETRYABLE as exc:
            logger.warning("Giving up on busy boundary %s: %s", lock_key, exc)
            raise errors.SlotBusyError(
                "Slot is busy, try again", slot_id=str(lock_key)
            ) from exc

    async def _attempt_unit(
        self,
        lock_key: uuid.UUID | None,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        if lock_key is None:
            return await self._commit_unit(work)
        async with self._locks.hold(
            lock_key, timeout=self._settings.slot_lock_timeout_seconds
        ):
            return await self._commit_unit(work)

    async def _commit_unit(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._sessionmaker() as session:
            try:
                result = await work(session)
                await session.commit()
                return result
            except IntegrityError as exc:
                await session.rollback()
                if _is_unique_violation(exc):
                    raise errors.DuplicateBookingError(
                        "Party already holds a booking on this slot"
                    ) from exc
                raise errors.ConflictError("Change conflicts with stored data") from exc
            except DBAPIError as exc:
                await session.rollback()
                logger.exception("Persistence failure inside scheduling unit")
                raise errors.UnavailableError("Storage is unavailable") from exc
            except Exception:
                await session.rollback()
                raise

    async def _read(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._sessionmaker() as session:
            try:
                return await work(session)
            except DBAPIError as exc:
                logger.exception("Persistence failure while reading")
                raise errors.UnavailableError("Storage is unavailable") from exc

    async def _slot_of_reservation(self, reservation_id: uuid.UUID) -> uuid.UUID:
        async def lookup(session: AsyncSession) -> uuid.UUID:
            reservation = await reservation_service.load_reservation(session, reservation_id)
            return reservation.slot_id

        return await self._read(lookup)

    async def _slot_of_entry(self, entry_id: uuid.UUID) -> uuid.UUID:
        async def lookup(session: AsyncSession) -> uuid.UUID:
            entry = await waitlist_service.load_entry(session, entry_id)
            return entry.slot_id

        return await self._read(lookup)

    @staticmethod
    async def _lock_slot(session: AsyncSession, slot_id: uuid.UUID) -> tuple[Slot, Agenda]:
        slot = await slot_service.load_slot(session, slot_id, for_update=True)
        agenda = await agenda_service.load_agenda(session, slot.agenda_id)
        return slot, agenda

    # -- agendas ----------------------------------------------------------

    async def create_agenda(self, *, actor_id: str, payload: AgendaCreate) -> Agenda:
        async def work(session: AsyncSession) -> Agenda:
            return await agenda_service.create_agenda(
                session, actor_id=actor_id, payload=payload
            )

        return await self._run_unit(None, work)

    async def update_agenda(
        self, agenda_id: uuid.UUID, *, actor_id: str, payload: AgendaUpdate
    ) -> Agenda:
        async def work(session: AsyncSession) -> Agenda:
            agenda = await agenda_service.load_agenda(session, agenda_id, for_update=True)
            return await agenda_service.update_agenda(
                session, agenda=agenda, actor_id=actor_id, payload=payload
            )

        return await self._run_unit(agenda_id, work)

    async def archive_agenda(self, agenda_id: uuid.UUID, *, actor_id: str) -> Agenda:
        async def work(session: AsyncSession) -> Agenda:
            agenda = await agenda_service.load_agenda(session, agenda_id, for_update=True)
            return await agenda_service.archive_agenda(
                session, agenda=agenda, actor_id=actor_id
            )

        return await self._run_unit(agenda_id, work)

    async def get_agenda(self, agenda_id: uuid.UUID) -> Agenda:
        async def work(session: AsyncSession) -> Agenda:
            return await agenda_service.load_agenda(session, agenda_id)

        return await self._read(work)

    async def list_agendas(
        self,
        *,
        owner_id: uuid.UUID | None = None,
        agenda_type: AgendaType | None = None,
        status: AgendaStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Agenda], int]:
        async def work(session: AsyncSession) -> tuple[list[Agenda], int]:
            return await agenda_service.list_agendas(
                session,
                owner_id=owner_id,
                agenda_type=agenda_type,
                status=status,
                limit=limit,
                offset=offset,
            )

        return await self._read(work)

    # -- slots ------------------------------------------------------------

    async def create_slot(
        self,
        agenda_id: uuid.UUID,
        *,
        actor_id: str,
        start_at: datetime,
        end_at: datetime,
        capacity_override: int | None = None,
    ) -> Slot:
        # Keyed on the agenda so overlap checks for one agenda are serialized.
        async def work(session: AsyncSession) -> Slot:
            agenda = await agenda_service.load_agenda(session, agenda_id, for_update=True)
            return await slot_service.create_slot(
                session,
                agenda=agenda,
                actor_id=actor_id,
                start_at=start_at,
                end_at=end_at,
                capacity_override=capacity_override,
            )

        return await self._run_unit(agenda_id, work)

    async def cancel_slot(self, slot_id: uuid.UUID, *, actor_id: str) -> SlotCancellation:
        async def work(session: AsyncSession) -> SlotCancellation:
            slot, agenda = await self._lock_slot(session, slot_id)
            return await slot_service.cancel_slot(
                session, slot=slot, agenda=agenda, actor_id=actor_id
            )

        return await self._run_unit(slot_id, work)

    async def list_slots(
        self, agenda_id: uuid.UUID, *, include_closed: bool = False
    ) -> Sequence[Slot]:
        async def work(session: AsyncSession) -> Sequence[Slot]:
            await agenda_service.load_agenda(session, agenda_id)
            return await slot_service.list_slots(
                session, agenda_id=agenda_id, include_closed=include_closed
            )

        return await self._read(work)

    async def list_slot(
        self, slot_id: uuid.UUID, *, actor_id: str | None = None
    ) -> SlotSnapshot:
        """Consistent read of a slot with its active reservations and queue.

        The read holds the slot's in-process lock so no unit commits between
        its statements; on PostgreSQL it also runs under REPEATABLE READ so
        writers in other processes cannot split it either. When ``actor_id``
        is given the caller must manage the slot's agenda.
        """

        async def work(session: AsyncSession) -> SlotSnapshot:
            if session.bind is not None and session.bind.dialect.name == "postgresql":
                await session.connection(
                    execution_options={"isolation_level": "REPEATABLE READ"}
                )
            slot = await slot_service.load_slot(session, slot_id)
            if actor_id is not None:
                agenda = await agenda_service.load_agenda(session, slot.agenda_id)
                await access_service.ensure_agenda_owner(
                    session, actor_id=actor_id, agenda=agenda
                )
            reservations = await reservation_service.list_for_slot(
                session, slot_id, active_only=True
            )
            waitlist = await waitlist_service.active_queue(session, slot_id)
            return SlotSnapshot(
                slot=slot, reservations=list(reservations), waitlist=list(waitlist)
            )

        try:
            async with self._locks.hold(
                slot_id, timeout=self._settings.slot_lock_timeout_seconds
            ):
                return await self._read(work)
        except LockTimeout as exc:
            raise errors.SlotBusyError(
                "Slot is busy, try again", slot_id=str(slot_id)
            ) from exc

    async def slot_counts(self, slot_id: uuid.UUID) -> tuple[int, int]:
        """Return ``(active reservations, active waitlist entries)``."""

        async def work(session: AsyncSession) -> tuple[int, int]:
            await slot_service.load_slot(session, slot_id)
            return (
                await reservation_service.count_active(session, slot_id),
                await waitlist_service.count_active(session, slot_id),
            )

        return await self._read(work)

    # -- bookings ---------------------------------------------------------

    async def book_slot(
        self, slot_id: uuid.UUID, *, party_id: str, actor_id: str | None = None
    ) -> BookingResult:
        async def work(session: AsyncSession) -> BookingResult:
            slot, agenda = await self._lock_slot(session, slot_id)
            return await booking_service.book_slot(
                session, slot=slot, agenda=agenda, party_id=party_id, actor_id=actor_id
            )

        return await self._run_unit(slot_id, work)

    async def cancel_reservation(
        self, reservation_id: uuid.UUID, *, actor_id: str
    ) -> ReleaseResult:
        slot_id = await self._slot_of_reservation(reservation_id)

        async def work(session: AsyncSession) -> ReleaseResult:
            slot, agenda = await self._lock_slot(session, slot_id)
            reservation = await reservation_service.load_reservation(session, reservation_id)
            return await booking_service.cancel_reservation(
                session,
                slot=slot,
                agenda=agenda,
                reservation=reservation,
                actor_id=actor_id,
                offer_ttl_minutes=self.offer_ttl_minutes,
            )

        return await self._run_unit(slot_id, work)

    async def confirm_reservation(
        self, reservation_id: uuid.UUID, *, actor_id: str
    ) -> ReleaseResult:
        slot_id = await self._slot_of_reservation(reservation_id)

        async def work(session: AsyncSession) -> ReleaseResult:
            slot, agenda = await self._lock_slot(session, slot_id)
            reservation = await reservation_service.load_reservation(session, reservation_id)
            return await booking_service.confirm_reservation(
                session,
                slot=slot,
                agenda=agenda,
                reservation=reservation,
                actor_id=actor_id,
            )

        return await self._run_unit(slot_id, work)

    async def reject_reservation(
        self, reservation_id: uuid.UUID, *, actor_id: str
    ) -> ReleaseResult:
        slot_id = await self._slot_of_reservation(reservation_id)

        async def work(session: AsyncSession) -> ReleaseResult:
            slot, agenda = await self._lock_slot(session, slot_id)
            reservation = await reservation_service.load_reservation(session, reservation_id)
            return await booking_service.reject_reservation(
                session,
                slot=slot,
                agenda=agenda,
                reservation=reservation,
                actor_id=actor_id,
                offer_ttl_minutes=self.offer_ttl_minutes,
            )

        return await self._run_unit(slot_id, work)

    async def list_party_reservations(
        self, party_id: str, *, limit: int = 50, offset: int = 0
    ) -> Sequence[Reservation]:
        async def work(session: AsyncSession) -> Sequence[Reservation]:
            return await reservation_service.list_for_party(
                session, party_id, limit=limit, offset=offset
            )

        return await self._read(work)

    async def list_party_waitlist(
        self, party_id: str, *, active_only: bool = True, limit: int = 50, offset: int = 0
    ) -> Sequence[WaitlistEntry]:
        async def work(session: AsyncSession) -> Sequence[WaitlistEntry]:
            return await waitlist_service.list_for_party(
                session, party_id, active_only=active_only, limit=limit, offset=offset
            )

        return await self._read(work)

    async def list_owner_waitlist(
        self,
        announcer_id: uuid.UUID,
        *,
        actor_id: str,
        active_only: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[WaitlistEntry]:
        """Waitlist entries across every agenda owned by ``announcer_id``."""

        async def work(session: AsyncSession) -> Sequence[WaitlistEntry]:
            if not await access_service.actor_owns_announcer(
                session, actor_id=actor_id, announcer_id=announcer_id
            ):
                raise errors.ForbiddenError(
                    "Actor does not manage this announcer", announcer_id=str(announcer_id)
                )
            return await waitlist_service.list_for_announcer(
                session, announcer_id, active_only=active_only, limit=limit, offset=offset
            )

        return await self._read(work)

    # -- promotion and waitlist -------------------------------------------

    async def promote_next(
        self, slot_id: uuid.UUID, *, actor_id: str | None = None
    ) -> PromotionResult | None:
        """Promote the waitlist head if a seat is free.

        ``actor_id`` is checked for ownership when given; internal callers
        pass ``None``.
        """

        async def work(session: AsyncSession) -> PromotionResult | None:
            slot, agenda = await self._lock_slot(session, slot_id)
            if actor_id is not None:
                await access_service.ensure_agenda_owner(
                    session, actor_id=actor_id, agenda=agenda
                )
            if slot.is_cancelled:
                return None
            return await promotion_service.promote_next(
                session,
                slot=slot,
                agenda=agenda,
                offer_ttl_minutes=self.offer_ttl_minutes,
                actor_id=actor_id,
            )

        return await self._run_unit(slot_id, work)

    async def promote_explicit(
        self, entry_id: uuid.UUID, *, actor_id: str
    ) -> PromotionResult:
        slot_id = await self._slot_of_entry(entry_id)

        async def work(session: AsyncSession) -> PromotionResult:
            slot, agenda = await self._lock_slot(session, slot_id)
            await access_service.ensure_agenda_owner(session, actor_id=actor_id, agenda=agenda)
            entry = await waitlist_service.load_entry(session, entry_id)
            return await promotion_service.promote_explicit(
                session,
                slot=slot,
                agenda=agenda,
                entry=entry,
                offer_ttl_minutes=self.offer_ttl_minutes,
                actor_id=actor_id,
            )

        return await self._run_unit(slot_id, work)

    async def accept_offer(
        self, entry_id: uuid.UUID, *, party_id: str, now: datetime | None = None
    ) -> PromotionResult:
        slot_id = await self._slot_of_entry(entry_id)

        async def work(session: AsyncSession) -> PromotionResult:
            slot, _ = await self._lock_slot(session, slot_id)
            entry = await waitlist_service.load_entry(session, entry_id)
            return await promotion_service.accept_offer(
                session, slot=slot, entry=entry, party_id=party_id, now=now
            )

        return await self._run_unit(slot_id, work)

    async def cancel_waitlist_entry(
        self, entry_id: uuid.UUID, *, actor_id: str
    ) -> ReleaseResult:
        slot_id = await self._slot_of_entry(entry_id)

        async def work(session: AsyncSession) -> ReleaseResult:
            slot, agenda = await self._lock_slot(session, slot_id)
            entry = await waitlist_service.load_entry(session, entry_id)
            return await booking_service.cancel_waitlist_entry(
                session,
                slot=slot,
                agenda=agenda,
                entry=entry,
                actor_id=actor_id,
                offer_ttl_minutes=self.offer_ttl_minutes,
            )

        return await self._run_unit(slot_id, work)

    async def expire_notified(self, entry_id: uuid.UUID) -> ReleaseResult:
        slot_id = await self._slot_of_entry(entry_id)

        async def work(session: AsyncSession) -> ReleaseResult:
            slot, agenda = await self._lock_slot(session, slot_id)
            entry = await waitlist_service.load_entry(session, entry_id)
            return await promotion_service.expire_notified(
                session,
                slot=slot,
                agenda=agenda,
                entry=entry,
                offer_ttl_minutes=self.offer_ttl_minutes,
            )

        return await self._run_unit(slot_id, work)

    async def expire_stale_offers(
        self, *, now: datetime | None = None, batch_size: int = 100
    ) -> OfferSweep:
        """Expire every offer whose response window closed before ``now``.

        Each offer is handled in its own slot unit; a busy slot is skipped and
        picked up by the next sweep.
        """
        cutoff = reservation_service.coerce_utc(now) if now is not None else utcnow()

        async def find(session: AsyncSession) -> Sequence[tuple[uuid.UUID, uuid.UUID]]:
            return await waitlist_service.list_stale_offers(
                session, now=cutoff, limit=batch_size
            )

        sweep = OfferSweep()
        for entry_id, slot_id in await self._read(find):

            async def work(
                session: AsyncSession, entry_id: uuid.UUID = entry_id, slot_id: uuid.UUID = slot_id
            ) -> ReleaseResult | None:
                slot, agenda = await self._lock_slot(session, slot_id)
                entry = await waitlist_service.load_entry(session, entry_id)
                if entry.status is not WaitlistStatus.NOTIFIED or entry.expires_at is None:
                    return None
                if reservation_service.coerce_utc(entry.expires_at) > cutoff:
                    return None
                return await promotion_service.expire_notified(
                    session,
                    slot=slot,
                    agenda=agenda,
                    entry=entry,
                    offer_ttl_minutes=self.offer_ttl_minutes,
                )

            try:
                outcome = await self._run_unit(slot_id, work)
            except errors.SlotBusyError:
                logger.info("Slot %s busy; offer %s left for next sweep", slot_id, entry_id)
                continue
            if outcome is None:
                continue
            sweep.expired.append(entry_id)
            sweep.notifications.extend(outcome.all_notifications())
        if sweep.count:
            logger.info("Expired %d stale waitlist offers", sweep.count)
        return sweep
