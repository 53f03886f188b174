"""Background scheduler for the daily risk run."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from execgraph.config import Settings
from execgraph.risk import RiskRunOrchestrator

logger = logging.getLogger(__name__)

RISK_JOB_ID = "daily_risk_run"

scheduler = AsyncIOScheduler(timezone="UTC")


def start_scheduler(orchestrator: RiskRunOrchestrator, settings: Settings) -> None:
    """Register the daily risk run for every tenant and start the scheduler."""
    scheduler.add_job(
        orchestrator.run_all,
        trigger=CronTrigger(hour=settings.risk_schedule_hour_utc, minute=0, timezone="UTC"),
        id=RISK_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info("[Scheduler] Background scheduler started (risk run: %02d:00 UTC)", settings.risk_schedule_hour_utc)


def stop_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown()
        logger.info("[Scheduler] Background scheduler stopped")
