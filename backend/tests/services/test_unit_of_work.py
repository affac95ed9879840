"""Error mapping and retry inside the facade's unit of work."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from agenda_engine.core import errors
from agenda_engine.services import agenda_service, booking_service
from agenda_engine.services.results import BookingKind

pytestmark = pytest.mark.asyncio


def _raising(exc: Exception):
    async def _fail(*args, **kwargs):
        raise exc

    return _fail


async def test_unique_violation_reads_as_duplicate_booking(
    scheduler, make_agenda, make_slot, monkeypatch
) -> None:
    slot = await make_slot(await make_agenda())
    monkeypatch.setattr(
        booking_service,
        "book_slot",
        _raising(
            IntegrityError(
                "INSERT INTO reservations", {}, Exception("UNIQUE constraint failed: reservations")
            )
        ),
    )

    with pytest.raises(errors.DuplicateBookingError):
        await scheduler.book_slot(slot.id, party_id="alice")


async def test_other_integrity_errors_read_as_conflict(
    scheduler, make_agenda, make_slot, monkeypatch
) -> None:
    slot = await make_slot(await make_agenda())
    monkeypatch.setattr(
        booking_service,
        "book_slot",
        _raising(
            IntegrityError(
                "INSERT INTO reservations", {}, Exception("FOREIGN KEY constraint failed")
            )
        ),
    )

    with pytest.raises(errors.ConflictError) as excinfo:
        await scheduler.book_slot(slot.id, party_id="alice")
    assert excinfo.type is errors.ConflictError


async def test_storage_failures_read_as_unavailable(
    scheduler, make_agenda, make_slot, monkeypatch
) -> None:
    agenda = await make_agenda()
    slot = await make_slot(agenda)
    locked = OperationalError("UPDATE slots", {}, Exception("database is locked"))

    monkeypatch.setattr(booking_service, "book_slot", _raising(locked))
    with pytest.raises(errors.UnavailableError):
        await scheduler.book_slot(slot.id, party_id="alice")

    monkeypatch.setattr(agenda_service, "load_agenda", _raising(locked))
    with pytest.raises(errors.UnavailableError):
        await scheduler.get_agenda(agenda.id)


async def test_stale_version_is_retried(scheduler, make_agenda, make_slot, monkeypatch) -> None:
    slot = await make_slot(await make_agenda())
    original = booking_service.book_slot
    calls = []

    async def stale_once(session, **kwargs):
        calls.append(kwargs["party_id"])
        if len(calls) == 1:
            raise StaleDataError("slot row changed underneath")
        return await original(session, **kwargs)

    monkeypatch.setattr(booking_service, "book_slot", stale_once)
    booked = await scheduler.book_slot(slot.id, party_id="alice")

    assert calls == ["alice", "alice"]
    assert booked.kind is BookingKind.RESERVED
    assert await scheduler.slot_counts(slot.id) == (1, 0)
