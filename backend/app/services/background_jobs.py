"""
services/background_jobs.py

Scheduled background jobs for Courtline.

Jobs (one AsyncIOScheduler, two cadences):
  1. hearing_status_sweeps
     Cancelled / completed cascades, start-time and end-time sweeps.
     Runs every STATUS_SWEEP_INTERVAL_SECONDS (default 30s).

  2. hearing_reminders
     Upcoming / started hearing reminders with the dedup guard.
     Runs every REMINDER_SWEEP_INTERVAL_SECONDS (default 60s).

Setup (FastAPI lifespan, see app/main.py):

    reconciler = HearingReconciler(SessionLocal, dispatcher)
    start_scheduler(reconciler)
    yield
    shutdown_scheduler()
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.services.reconciliation import HearingReconciler

logger = logging.getLogger(__name__)

# ── Scheduler singleton ───────────────────────────────────────────────────────
_scheduler: AsyncIOScheduler | None = None


def start_scheduler(reconciler: HearingReconciler) -> AsyncIOScheduler:
    """
    Starts the reconciliation scheduler. Call from FastAPI lifespan startup.
    Raises if the store is unreachable.
    """
    global _scheduler

    reconciler.verify_store()

    _scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)

    # Job 1: status sweeps 1-4
    _scheduler.add_job(
        run_status_sweeps,
        trigger=IntervalTrigger(
            seconds=settings.STATUS_SWEEP_INTERVAL_SECONDS,
            timezone=settings.SCHEDULER_TIMEZONE,
        ),
        args=[reconciler],
        id="hearing_status_sweeps",
        name="Hearing status sweeps",
        replace_existing=True,
        max_instances=1,          # never run two at once
        coalesce=True,
        misfire_grace_time=settings.SCHEDULER_MISFIRE_GRACE_SECONDS,
    )

    # Job 2: reminder sweep
    _scheduler.add_job(
        run_reminder_sweep,
        trigger=IntervalTrigger(
            seconds=settings.REMINDER_SWEEP_INTERVAL_SECONDS,
            timezone=settings.SCHEDULER_TIMEZONE,
        ),
        args=[reconciler],
        id="hearing_reminders",
        name="Hearing reminders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=settings.SCHEDULER_MISFIRE_GRACE_SECONDS,
    )

    _scheduler.start()
    logger.info("Background scheduler started: 2 jobs registered")
    return _scheduler


def shutdown_scheduler() -> None:
    """Stops scheduling new ticks. Call from FastAPI lifespan shutdown."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Background scheduler shut down")
    _scheduler = None


# ============================================================================
# Jobs
# ============================================================================

async def run_status_sweeps(reconciler: HearingReconciler) -> None:
    logger.debug("Job: hearing_status_sweeps starting")
    try:
        reports = await reconciler.run_status_cycle()
        logger.debug(
            "Job: hearing_status_sweeps done. changed=%d errors=%d",
            sum(r.changed for r in reports), sum(r.errors for r in reports),
        )
    except Exception as e:
        logger.exception("Job: hearing_status_sweeps failed: %s", e)


async def run_reminder_sweep(reconciler: HearingReconciler) -> None:
    logger.debug("Job: hearing_reminders starting")
    try:
        await reconciler.run_reminder_cycle()
    except Exception as e:
        logger.exception("Job: hearing_reminders failed: %s", e)
