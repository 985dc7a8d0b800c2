"""
APScheduler job definitions for the funding sourcer.

Two schedules:
- Weekly legacy run: RSS feeds (latest items only)
- Daily backfill run: paginated archives and APIs, resuming from the saved
  cursors, a few batches per source per run

Each run is wrapped in a job-level timeout and reports to the webhooks.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config.settings import settings
from ..harvester.orchestrator import SourcerResult, run_sourcer
from .notifications import send_sourcer_summary

logger = logging.getLogger(__name__)

LEGACY_JOB_ID = "sourcer_legacy"
BACKFILL_JOB_ID = "sourcer_backfill"

scheduler: Optional[AsyncIOScheduler] = None


async def run_sourcer_job(
    legacy_only: bool = False,
    paginated_only: bool = False,
    trigger: str = "scheduled",
) -> Optional[SourcerResult]:
    """
    Run the sourcer under the job-level timeout and notify.

    Returns None when the run timed out or crashed. Checkpoints are saved per
    batch, so the next run resumes after the last batch that finished.
    """
    job_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    family = "legacy" if legacy_only else "backfill" if paginated_only else "all"
    logger.info(f"[{job_id}] Starting sourcer job (family={family}, trigger={trigger})")

    started = time.monotonic()
    result: Optional[SourcerResult] = None
    error: Optional[str] = None

    try:
        result = await asyncio.wait_for(
            run_sourcer(legacy_only=legacy_only, paginated_only=paginated_only),
            timeout=settings.sourcer_job_timeout,
        )
    except asyncio.TimeoutError:
        error = f"Job timed out after {settings.sourcer_job_timeout} seconds"
        logger.warning(f"TIMEOUT_SKIP: sourcer {family} exceeded {settings.sourcer_job_timeout}s - skipping")
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        logger.error(f"[{job_id}] Sourcer job crashed: {error}", exc_info=True)

    duration = time.monotonic() - started
    if result is not None:
        logger.info(f"[{job_id}] Sourcer job finished: {result.status.value} in {duration:.1f}s")

    await send_sourcer_summary(job_id, result, duration, error=error)
    return result


async def legacy_sourcer_job():
    """Weekly RSS run."""
    await run_sourcer_job(legacy_only=True)


async def backfill_sourcer_job():
    """Daily paginated backfill run."""
    await run_sourcer_job(paginated_only=True)


def get_sourcer_schedule() -> dict[str, CronTrigger]:
    """Cron triggers for both job families."""
    return {
        LEGACY_JOB_ID: CronTrigger(
            day_of_week=settings.sourcer_legacy_cron_day,
            hour=settings.sourcer_legacy_hour,
            minute=0,
            timezone=settings.scheduler_timezone,
        ),
        BACKFILL_JOB_ID: CronTrigger(
            hour=settings.sourcer_backfill_hour,
            minute=0,
            timezone=settings.scheduler_timezone,
        ),
    }


def setup_scheduler() -> AsyncIOScheduler:
    """
    Initialize and start the APScheduler.

    Configures:
    - Weekly legacy (RSS) run
    - Daily backfill run
    - Job store in memory (stateless; progress lives in the checkpoints)
    """
    global scheduler

    scheduler = AsyncIOScheduler(
        timezone=settings.scheduler_timezone,
        job_defaults={
            "coalesce": True,  # A missed run is resumed by the next one anyway
            "max_instances": 1,  # Only one instance at a time
            "misfire_grace_time": 600,
        }
    )

    triggers = get_sourcer_schedule()
    scheduler.add_job(
        legacy_sourcer_job,
        trigger=triggers[LEGACY_JOB_ID],
        id=LEGACY_JOB_ID,
        name="Funding Sourcer (weekly RSS)",
        replace_existing=True,
    )
    scheduler.add_job(
        backfill_sourcer_job,
        trigger=triggers[BACKFILL_JOB_ID],
        id=BACKFILL_JOB_ID,
        name="Funding Sourcer (daily backfill)",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.id} - next run: {job.next_run_time}")

    return scheduler


def shutdown_scheduler():
    """Shutdown the scheduler without waiting for running jobs."""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown complete")
        scheduler = None
