"""
Background scheduling for the daily expiring-offers sweep.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import utc_now
from app.core.config import settings
from app.core.db import SessionLocal
from app.services.expiring_offers import SweepResult, check_and_notify_expiring_offers

logger = logging.getLogger(__name__)


class ExpiringOffersScheduler:
    """Runs the expiring-offers sweep once a day on a cron trigger."""

    job_id = "expiring_offers_check"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.timezone = ZoneInfo(settings.SCHEDULER_TIMEZONE)
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self.is_running = False

    def start(self) -> None:
        if self.is_running:
            logger.warning("Expiring offers scheduler already running")
            return

        self.scheduler.add_job(
            func=self.run_once,
            trigger=CronTrigger(
                hour=settings.EXPIRING_OFFERS_CRON_HOUR,
                minute=settings.EXPIRING_OFFERS_CRON_MINUTE,
                timezone=self.timezone,
            ),
            id=self.job_id,
            name="Expiring Offers Check",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self.is_running = True

        logger.info(
            "Expiring offers check scheduled daily at %02d:%02d (%s)",
            settings.EXPIRING_OFFERS_CRON_HOUR,
            settings.EXPIRING_OFFERS_CRON_MINUTE,
            settings.SCHEDULER_TIMEZONE,
        )

    def stop(self) -> None:
        if not self.is_running:
            return
        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Expiring offers scheduler stopped")

    def status(self) -> dict:
        job = self.scheduler.get_job(self.job_id) if self.is_running else None
        next_run = getattr(job, "next_run_time", None) if job else None
        return {
            "running": self.is_running,
            "job_id": self.job_id,
            "timezone": settings.SCHEDULER_TIMEZONE,
            "schedule": f"{settings.EXPIRING_OFFERS_CRON_MINUTE} {settings.EXPIRING_OFFERS_CRON_HOUR} * * *",
            "next_run_time": next_run,
        }

    async def run_once(self) -> SweepResult:
        async with self.session_factory() as db:
            return await check_and_notify_expiring_offers(db, now=self.clock())


expiring_offers_scheduler = ExpiringOffersScheduler()
