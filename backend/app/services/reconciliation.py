"""
services/reconciliation.py

Time-driven hearing / case status reconciliation.

Sweeps, in cycle order:
  1. sweep_cancelled_hearings   cancelled hearing, case not terminal -> close case
  2. sweep_completed_hearings   completed hearing, case not terminal -> resolve case
  3. sweep_started_hearings     now inside the hearing window -> hearing + case in-progress
  4. sweep_ended_hearings       end time passed -> hearing waiting-decision,
                                case back to scheduled-hearing
  5. sweep_hearing_reminders    upcoming / just-started reminders, deduplicated

Every sweep re-reads current state and goes through lifecycle_service, so the
transition validator is the only guard against overlapping ticks: a second
tick that saw the same stale status gets a rejection and skips the hearing.
A sweep that blows up is logged and the next sweep still runs.

Driven by services/background_jobs.py (APScheduler) and jobs/reconcile_job.py.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models import Case, CaseStatus, Hearing, HearingStatus, NotificationType
from app.services import lifecycle_service
from app.services.lifecycle_service import MutationResult, case_participants
from app.services.notification_service import NotificationDispatcher, drafts_for
from app.services.transitions import is_case_terminal
from app.utils.exceptions import (
    CaseNotFoundError,
    HearingNotFoundError,
    InvalidTransitionError,
    LifecycleRuleError,
)
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

TERMINAL_CASE_STATUSES = [s for s in CaseStatus if is_case_terminal(s)]

SelectFn = Callable[[Session, datetime], list]
ApplyFn = Callable[[Session, object, datetime], MutationResult]


@dataclass
class SweepReport:
    name: str
    scanned: int = 0
    changed: int = 0
    skipped: int = 0
    errors: int = 0
    notified: int = 0

    def log(self) -> None:
        logger.info(
            "Sweep %s: done. scanned=%d changed=%d skipped=%d errors=%d notified=%d",
            self.name, self.scanned, self.changed, self.skipped, self.errors, self.notified,
        )


class HearingReconciler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = utcnow,
        lookahead: Optional[timedelta] = None,
        lookback: Optional[timedelta] = None,
    ):
        self._session_factory = session_factory
        self.dispatcher = dispatcher
        self._clock = clock
        self.lookahead = lookahead if lookahead is not None else timedelta(minutes=settings.REMINDER_LOOKAHEAD_MINUTES)
        self.lookback = lookback if lookback is not None else timedelta(minutes=settings.REMINDER_LOOKBACK_MINUTES)

    def verify_store(self) -> None:
        """Raises if the store cannot be reached. Called before the scheduler starts."""
        db = self._session_factory()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()

    # ── Cycles ───────────────────────────────────────────────────────────────

    async def run_status_cycle(self, now: Optional[datetime] = None) -> list[SweepReport]:
        now = now or self._clock()
        return [
            await self.sweep_cancelled_hearings(now),
            await self.sweep_completed_hearings(now),
            await self.sweep_started_hearings(now),
            await self.sweep_ended_hearings(now),
        ]

    async def run_reminder_cycle(self, now: Optional[datetime] = None) -> list[SweepReport]:
        now = now or self._clock()
        return [await self.sweep_hearing_reminders(now)]

    async def run_cycle(self, now: Optional[datetime] = None) -> list[SweepReport]:
        now = now or self._clock()
        reports = await self.run_status_cycle(now)
        reports.extend(await self.run_reminder_cycle(now))
        return reports

    # ── Sweeps 1-4 ───────────────────────────────────────────────────────────

    async def sweep_cancelled_hearings(self, now: Optional[datetime] = None) -> SweepReport:
        return await self._run_sweep(
            "cancelled_hearings",
            _select_with_open_case(HearingStatus.cancelled),
            lifecycle_service.close_case_for_cancelled_hearing,
            now,
        )

    async def sweep_completed_hearings(self, now: Optional[datetime] = None) -> SweepReport:
        return await self._run_sweep(
            "completed_hearings",
            _select_with_open_case(HearingStatus.completed),
            lifecycle_service.resolve_case_for_completed_hearing,
            now,
        )

    async def sweep_started_hearings(self, now: Optional[datetime] = None) -> SweepReport:
        return await self._run_sweep(
            "started_hearings",
            _select_started,
            lifecycle_service.start_hearing,
            now,
        )

    async def sweep_ended_hearings(self, now: Optional[datetime] = None) -> SweepReport:
        return await self._run_sweep(
            "ended_hearings",
            _select_ended,
            lifecycle_service.end_hearing,
            now,
        )

    async def _run_sweep(self, name: str, select: SelectFn, apply: ApplyFn, now: Optional[datetime]) -> SweepReport:
        now = now or self._clock()
        report = SweepReport(name=name)
        db = self._session_factory()

        try:
            hearing_ids = select(db, now)
            report.scanned = len(hearing_ids)

            for hearing_id in hearing_ids:
                try:
                    result = apply(db, hearing_id, now)
                except (InvalidTransitionError, LifecycleRuleError) as e:
                    db.rollback()
                    report.skipped += 1
                    logger.info("Sweep %s: hearing %s skipped: %s", name, hearing_id, e.reason)
                    continue
                except (HearingNotFoundError, CaseNotFoundError) as e:
                    db.rollback()
                    report.skipped += 1
                    logger.info("Sweep %s: %s", name, e.detail)
                    continue
                except Exception:
                    db.rollback()
                    report.errors += 1
                    logger.exception("Sweep %s: hearing %s failed", name, hearing_id)
                    continue

                if result.changed:
                    report.changed += 1
                else:
                    report.skipped += 1
                dispatched = await self.dispatcher.dispatch(result.notifications)
                report.notified += len(dispatched.created)

        except Exception:
            report.errors += 1
            logger.exception("Sweep %s failed", name)

        finally:
            db.close()

        report.log()
        return report

    # ── Sweep 5: reminders ───────────────────────────────────────────────────

    async def sweep_hearing_reminders(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Scheduled hearings starting within the lookahead, or that started
        within the lookback, get one reminder per participant per dedup
        window. The "started" branch also activates the case.
        """
        now = now or self._clock()
        report = SweepReport(name="hearing_reminders")
        db = self._session_factory()

        try:
            self.dispatcher.evict_expired_reminders(now)

            hearings = (
                db.query(Hearing)
                .filter(
                    Hearing.status == HearingStatus.scheduled,
                    Hearing.date > now - self.lookback,
                    Hearing.date <= now + self.lookahead,
                )
                .order_by(Hearing.date)
                .all()
            )
            report.scanned = len(hearings)

            for hearing in hearings:
                hearing_id = hearing.id
                if not self.dispatcher.should_remind(hearing_id, now):
                    report.skipped += 1
                    continue
                try:
                    drafts, started = self._reminder_drafts(hearing, now)
                except Exception:
                    report.errors += 1
                    logger.exception("Sweep hearing_reminders: hearing %s failed", hearing_id)
                    continue

                # Reminders go out even when case activation fails
                if started:
                    try:
                        result = lifecycle_service.activate_case_for_started_hearing(db, hearing_id, now)
                        if result.changed:
                            report.changed += 1
                    except (InvalidTransitionError, LifecycleRuleError) as e:
                        db.rollback()
                        logger.info("Sweep hearing_reminders: hearing %s: %s", hearing_id, e.reason)
                    except Exception:
                        db.rollback()
                        report.errors += 1
                        logger.exception("Sweep hearing_reminders: activating case for hearing %s failed", hearing_id)

                dispatched = await self.dispatcher.dispatch(drafts)
                self.dispatcher.mark_reminded(hearing_id, now)
                report.notified += len(dispatched.created)

        except Exception:
            report.errors += 1
            logger.exception("Sweep hearing_reminders failed")

        finally:
            db.close()

        report.log()
        return report

    def _reminder_drafts(self, hearing: Hearing, now: datetime):
        case = hearing.case
        started = hearing.date <= now
        where = hearing.virtual_link or hearing.court_room or hearing.address or ""

        if started:
            title = "Hearing Started"
            message = f'Your hearing for case "{case.title}" has started.'
        else:
            minutes = max(1, math.ceil((hearing.date - now).total_seconds() / 60))
            title = "Upcoming Hearing"
            message = f'Your hearing for case "{case.title}" starts in {minutes} minute{"s" if minutes != 1 else ""}.'
        if where:
            message = f"{message} Location: {where}"

        drafts = drafts_for(
            case_participants(case),
            type=NotificationType.hearing_reminder,
            title=title,
            message=message,
            related_case_id=case.id,
            related_hearing_id=hearing.id,
            action_url=hearing.virtual_link or "",
            is_action_required=not started,
        )
        return drafts, started


# ============================================================================
# Selections
# ============================================================================

def _select_with_open_case(status: HearingStatus) -> SelectFn:
    def select(db: Session, now: datetime) -> list:
        rows = (
            db.query(Hearing.id)
            .join(Case, Hearing.case_id == Case.id)
            .filter(
                Hearing.status == status,
                Case.status.notin_(TERMINAL_CASE_STATUSES),
            )
            .order_by(Hearing.date)
            .all()
        )
        return [row.id for row in rows]
    return select


def _select_started(db: Session, now: datetime) -> list:
    rows = (
        db.query(Hearing.id)
        .filter(
            Hearing.status.in_([HearingStatus.scheduled, HearingStatus.waiting_decision]),
            Hearing.date <= now,
            Hearing.end_time > now,
        )
        .order_by(Hearing.date)
        .all()
    )
    return [row.id for row in rows]


def _select_ended(db: Session, now: datetime) -> list:
    rows = (
        db.query(Hearing.id)
        .filter(
            Hearing.status == HearingStatus.in_progress,
            Hearing.end_time <= now,
        )
        .order_by(Hearing.date)
        .all()
    )
    return [row.id for row in rows]
