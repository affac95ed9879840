"""Offer sweep job wiring."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from agenda_engine.core.config import get_settings
from agenda_engine.models import PromotionPolicy
from agenda_engine.models.mixins import utcnow
from agenda_engine.scheduler import offer_expiry_job
from agenda_engine.services.scheduling_service import SchedulingService


@pytest.fixture()
def idle_service() -> SchedulingService:
    return SchedulingService(async_sessionmaker())


def test_scheduler_disabled_by_setting(monkeypatch, idle_service) -> None:
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    get_settings.cache_clear()
    try:
        assert offer_expiry_job.build_scheduler(idle_service) is None
    finally:
        get_settings.cache_clear()


def test_scheduler_registers_sweep_job(monkeypatch, idle_service) -> None:
    monkeypatch.setenv("SCHEDULER_ENABLED", "true")
    monkeypatch.setenv("OFFER_SWEEP_INTERVAL_SECONDS", "30")
    get_settings.cache_clear()
    try:
        sweeper = offer_expiry_job.build_scheduler(idle_service)
    finally:
        get_settings.cache_clear()

    assert sweeper is not None
    job = sweeper.get_job(offer_expiry_job.JOB_ID)
    assert job is not None
    assert job.trigger.interval == timedelta(seconds=30)


@pytest.mark.asyncio
async def test_run_offer_sweep_counts_expired(
    scheduler, make_agenda, make_slot, monkeypatch
) -> None:
    agenda = await make_agenda(
        capacity_per_slot=1, promotion_policy=PromotionPolicy.OFFER, offer_ttl_minutes=1
    )
    slot = await make_slot(agenda)
    held = await scheduler.book_slot(slot.id, party_id="A")
    await scheduler.book_slot(slot.id, party_id="B")
    await scheduler.cancel_reservation(held.reservation.id, actor_id="A")

    assert await offer_expiry_job.run_offer_sweep(scheduler) == 0

    sweep = scheduler.expire_stale_offers
    monkeypatch.setattr(
        scheduler,
        "expire_stale_offers",
        lambda: sweep(now=utcnow() + timedelta(minutes=5)),
    )
    assert await offer_expiry_job.run_offer_sweep(scheduler) == 1
