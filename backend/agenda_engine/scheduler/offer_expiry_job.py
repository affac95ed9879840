"""Periodic sweep that expires unanswered waitlist offers."""

from __future__ import annotations

import logging

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from agenda_engine.core.config import get_settings
from agenda_engine.services import notification_service
from agenda_engine.services.scheduling_service import SchedulingService

logger = logging.getLogger(__name__)

JOB_ID = "expire_stale_offers"


async def run_offer_sweep(service: SchedulingService) -> int:
    """Expire stale offers and deliver the resulting notifications."""
    sweep = await service.expire_stale_offers()
    if sweep.notifications:
        await notification_service.deliver_all(sweep.notifications)
    return sweep.count


def _on_job_error(event) -> None:
    logger.error(
        "Scheduled job failed: job_id=%s error=%s",
        event.job_id,
        event.exception,
    )
    if event.traceback:
        logger.error("Traceback for job %s:\n%s", event.job_id, event.traceback)


def _on_job_missed(event) -> None:
    logger.warning(
        "Scheduled job missed: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def build_scheduler(service: SchedulingService) -> AsyncIOScheduler | None:
    """Return a configured (not yet started) scheduler, or ``None`` when disabled."""
    settings = get_settings()
    if not settings.scheduler_enabled or settings.offer_sweep_interval_seconds <= 0:
        logger.info("Offer expiry sweep disabled")
        return None

    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": settings.offer_sweep_interval_seconds,
        },
    )
    scheduler.add_job(
        run_offer_sweep,
        trigger=IntervalTrigger(seconds=settings.offer_sweep_interval_seconds),
        args=[service],
        id=JOB_ID,
        name="Expire stale waitlist offers",
        replace_existing=True,
    )
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)
    logger.info(
        "Scheduled job: %s (every %s seconds)",
        JOB_ID,
        settings.offer_sweep_interval_seconds,
    )
    return scheduler
