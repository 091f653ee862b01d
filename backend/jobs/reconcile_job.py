from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timedelta

from app.core.config import settings
from app.core.logger import logger
from app.db.database import SessionLocal
from app.services.notification_service import NotificationDispatcher, ReminderDedupCache
from app.services.reconciliation import HearingReconciler

CYCLES = ("all", "status", "reminders")


def _parse_now_arg(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S")


async def run_reconcile_job(cycle: str = "all", now: datetime | None = None) -> dict:
    """
    One reconciliation pass outside the API process (cron / manual runs).
    The dedup cache lives only for this run.
    """
    dispatcher = NotificationDispatcher(
        SessionLocal,
        dedup_cache=ReminderDedupCache(window=timedelta(minutes=settings.REMINDER_DEDUP_WINDOW_MINUTES)),
    )
    reconciler = HearingReconciler(SessionLocal, dispatcher)

    # Store unreachable is fatal for the job
    reconciler.verify_store()

    if cycle == "status":
        reports = await reconciler.run_status_cycle(now)
    elif cycle == "reminders":
        reports = await reconciler.run_reminder_cycle(now)
    else:
        reports = await reconciler.run_cycle(now)

    summary = {
        report.name: {
            "scanned": report.scanned,
            "changed": report.changed,
            "skipped": report.skipped,
            "errors": report.errors,
            "notified": report.notified,
        }
        for report in reports
    }
    logger.info("Reconcile job completed: %s", summary)
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one hearing reconciliation cycle")
    parser.add_argument("--cycle", choices=CYCLES, default="all")
    parser.add_argument("--now", dest="now", help="UTC YYYY-MM-DDTHH:MM:SS (defaults to current time)")
    args = parser.parse_args()

    summary = asyncio.run(run_reconcile_job(args.cycle, _parse_now_arg(args.now)))
    print(summary)


if __name__ == "__main__":
    main()
