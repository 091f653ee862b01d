"""Tests for the time-driven hearing / case reconciliation loop."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from app.db.models import (
    Case,
    CaseRequest,
    CaseRequestStatus,
    CaseStatus,
    CaseType,
    CourtLevel,
    Hearing,
    HearingStatus,
    HearingType,
    Notification,
    NotificationType,
)
from app.services import lifecycle_service
from app.services.notification_service import NotificationDispatcher
from app.services.reconciliation import HearingReconciler, _select_started


def _reload(db, model, pk):
    db.expire_all()
    return db.get(model, pk)


def _by_name(reports):
    return {r.name: r for r in reports}


# ============================================================================
# Status sweeps
# ============================================================================

@pytest.mark.asyncio
async def test_started_hearing_goes_in_progress(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.approved, advocates=[advocate])
    hearing = factory.hearing(case, clock.now - timedelta(seconds=1), duration=30)

    reports = _by_name(await reconciler.run_cycle())

    assert reports["started_hearings"].changed == 1
    assert _reload(db, Hearing, hearing.id).status == HearingStatus.in_progress
    assert db.get(Case, case.id).status == CaseStatus.in_progress


@pytest.mark.asyncio
async def test_ended_hearing_waits_for_decision(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.in_progress, advocates=[advocate])
    hearing = factory.hearing(case, clock.now - timedelta(minutes=31), duration=30, status=HearingStatus.in_progress)

    reports = _by_name(await reconciler.run_cycle())

    assert reports["ended_hearings"].changed == 1
    assert reports["ended_hearings"].notified == 2
    assert _reload(db, Hearing, hearing.id).status == HearingStatus.waiting_decision
    assert db.get(Case, case.id).status == CaseStatus.scheduled_hearing

    titles = {n.title for n in db.query(Notification).all()}
    assert titles == {"Hearing Concluded"}


@pytest.mark.asyncio
async def test_cancelled_hearing_closes_case(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(case, clock.now + timedelta(days=1), status=HearingStatus.cancelled)

    report = await reconciler.sweep_cancelled_hearings()

    assert report.changed == 1
    case = _reload(db, Case, case.id)
    assert case.status == CaseStatus.closed
    assert case.close_reason == "Hearing was cancelled"

    # Terminal cases are no longer selected
    again = await reconciler.sweep_cancelled_hearings()
    assert again.scanned == 0


@pytest.mark.asyncio
async def test_completed_hearing_resolves_case(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(case, clock.now - timedelta(days=1), status=HearingStatus.completed)

    report = await reconciler.sweep_completed_hearings()

    assert report.changed == 1
    assert _reload(db, Case, case.id).status == CaseStatus.resolved


@pytest.mark.asyncio
async def test_cancelled_hearing_with_live_sibling_keeps_case_open(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(case, clock.now + timedelta(days=1), status=HearingStatus.cancelled)
    factory.hearing(case, clock.now + timedelta(days=7))

    report = await reconciler.sweep_cancelled_hearings()

    assert report.scanned == 1
    assert report.skipped == 1
    assert _reload(db, Case, case.id).status == CaseStatus.scheduled_hearing


@pytest.mark.asyncio
async def test_stale_second_sweep_is_rejected(db, factory, reconciler, session_factory, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.approved, advocates=[advocate])
    hearing = factory.hearing(case, clock.now - timedelta(seconds=1))

    # Both ticks observed the hearing while it was still scheduled
    observer = session_factory()
    try:
        stale_ids = _select_started(observer, clock.now)
    finally:
        observer.close()
    assert stale_ids == [hearing.id]

    def stale_select(db, now):
        return list(stale_ids)

    first = await reconciler._run_sweep("started_hearings", stale_select, lifecycle_service.start_hearing, clock.now)
    second = await reconciler._run_sweep("started_hearings", stale_select, lifecycle_service.start_hearing, clock.now)

    assert (first.changed, first.skipped) == (1, 0)
    assert (second.changed, second.skipped, second.errors) == (0, 1, 0)
    assert _reload(db, Hearing, hearing.id).status == HearingStatus.in_progress


@pytest.mark.asyncio
async def test_missed_window_stays_scheduled(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.approved, advocates=[advocate])
    hearing = factory.hearing(case, clock.now - timedelta(days=2), duration=30)

    reports = _by_name(await reconciler.run_status_cycle())

    assert reports["started_hearings"].scanned == 0
    assert reports["ended_hearings"].scanned == 0
    assert _reload(db, Hearing, hearing.id).status == HearingStatus.scheduled
    assert db.get(Case, case.id).status == CaseStatus.approved
    assert db.query(Notification).count() == 0


@pytest.mark.asyncio
async def test_cycle_is_idempotent(db, factory, reconciler, litigant, advocate, clock):
    started = factory.case(litigant, status=CaseStatus.approved, advocates=[advocate])
    factory.hearing(started, clock.now - timedelta(minutes=1))
    ended = factory.case(litigant, status=CaseStatus.in_progress, advocates=[advocate])
    factory.hearing(ended, clock.now - timedelta(hours=1), status=HearingStatus.in_progress)
    cancelled = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(cancelled, clock.now + timedelta(days=1), status=HearingStatus.cancelled)
    upcoming = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(upcoming, clock.now + timedelta(minutes=3))

    await reconciler.run_cycle(clock.now)
    db.expire_all()
    statuses = {c.id: c.status for c in db.query(Case).all()}
    hearing_statuses = {h.id: h.status for h in db.query(Hearing).all()}
    notifications = db.query(Notification).count()

    second = await reconciler.run_cycle(clock.now)

    assert sum(r.changed for r in second) == 0
    db.expire_all()
    assert {c.id: c.status for c in db.query(Case).all()} == statuses
    assert {h.id: h.status for h in db.query(Hearing).all()} == hearing_statuses
    assert db.query(Notification).count() == notifications


@pytest.mark.asyncio
async def test_failing_sweep_does_not_stop_the_cycle(db, factory, reconciler, litigant, advocate, clock):
    started = factory.case(litigant, status=CaseStatus.approved, advocates=[advocate])
    factory.hearing(started, clock.now - timedelta(seconds=5))
    ended = factory.case(litigant, status=CaseStatus.in_progress, advocates=[advocate])
    hearing = factory.hearing(ended, clock.now - timedelta(hours=1), status=HearingStatus.in_progress)

    with patch.object(lifecycle_service, "start_hearing", side_effect=RuntimeError("boom")):
        reports = _by_name(await reconciler.run_status_cycle())

    assert reports["started_hearings"].errors == 1
    assert reports["ended_hearings"].changed == 1
    assert _reload(db, Hearing, hearing.id).status == HearingStatus.waiting_decision


@pytest.mark.asyncio
async def test_broken_dispatcher_does_not_block_status_changes(db, factory, session_factory, litigant, advocate, clock):
    def broken_session():
        raise RuntimeError("notification store unavailable")

    reconciler = HearingReconciler(session_factory, NotificationDispatcher(broken_session), clock=clock)
    case = factory.case(litigant, status=CaseStatus.in_progress, advocates=[advocate])
    hearing = factory.hearing(case, clock.now - timedelta(minutes=45), status=HearingStatus.in_progress)

    report = await reconciler.sweep_ended_hearings()

    assert report.changed == 1
    assert report.notified == 0
    assert report.errors == 0
    assert _reload(db, Hearing, hearing.id).status == HearingStatus.waiting_decision


def test_verify_store(reconciler, dispatcher):
    reconciler.verify_store()

    def broken_session():
        raise RuntimeError("connection refused")

    with pytest.raises(RuntimeError):
        HearingReconciler(broken_session, dispatcher).verify_store()


# ============================================================================
# Reminder sweep
# ============================================================================

@pytest.mark.asyncio
async def test_one_reminder_per_participant_per_window(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(case, clock.now + timedelta(minutes=5), hearing_type=HearingType.virtual,
                    virtual_link="https://meet.example/h1")

    for _ in range(20):
        await reconciler.run_reminder_cycle()
        clock.advance(seconds=30)

    reminders = db.query(Notification).filter(Notification.type == NotificationType.hearing_reminder).all()
    assert sorted(n.recipient_id for n in reminders) == sorted([litigant.id, advocate.id])

    reminder = reminders[0]
    assert reminder.title == "Upcoming Hearing"
    assert "starts in 5 minutes" in reminder.message
    assert reminder.message.endswith("Location: https://meet.example/h1")
    assert reminder.action_url == "https://meet.example/h1"
    assert reminder.is_action_required is True


@pytest.mark.asyncio
async def test_reminder_outside_window_is_not_sent(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(case, clock.now + timedelta(minutes=30))
    factory.hearing(case, clock.now - timedelta(minutes=5))

    report = await reconciler.sweep_hearing_reminders()

    assert report.scanned == 0
    assert db.query(Notification).count() == 0


@pytest.mark.asyncio
async def test_started_reminder_activates_case_and_requests(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.approved, advocates=[advocate])
    request = CaseRequest(
        litigant_id=litigant.id,
        advocate_id=advocate.id,
        case_id=case.id,
        case_title=case.title,
        case_description=case.description,
        case_type=CaseType.civil,
        court=CourtLevel.district,
        status=CaseRequestStatus.accepted,
    )
    db.add(request)
    db.commit()
    factory.hearing(case, clock.now - timedelta(minutes=1), court_room="Court Room 2")

    report = await reconciler.sweep_hearing_reminders()

    assert report.changed == 1
    assert report.notified == 2
    assert _reload(db, Case, case.id).status == CaseStatus.in_progress
    assert db.get(CaseRequest, request.id).status == CaseRequestStatus.in_progress

    started = db.query(Notification).all()
    assert {n.title for n in started} == {"Hearing Started"}
    assert not any(n.is_action_required for n in started)


@pytest.mark.asyncio
async def test_failed_case_activation_still_sends_reminders(db, factory, reconciler, litigant, advocate, clock):
    case = factory.case(litigant, status=CaseStatus.approved, advocates=[advocate])
    hearing = factory.hearing(case, clock.now - timedelta(minutes=1))

    with patch.object(lifecycle_service, "activate_case_for_started_hearing", side_effect=RuntimeError("boom")):
        report = await reconciler.sweep_hearing_reminders()

    assert report.errors == 1
    assert report.notified == 2
    reminders = db.query(Notification).filter(Notification.related_hearing_id == hearing.id).all()
    assert sorted(n.recipient_id for n in reminders) == sorted([litigant.id, advocate.id])

    clock.advance(seconds=60)
    again = await reconciler.sweep_hearing_reminders()

    assert again.skipped == 1
    assert db.query(Notification).count() == 2


@pytest.mark.asyncio
async def test_zero_lookahead_only_reminds_started_hearings(db, factory, session_factory, dispatcher, litigant, advocate, clock):
    reconciler = HearingReconciler(session_factory, dispatcher, clock=clock, lookahead=timedelta(0))
    assert reconciler.lookahead == timedelta(0)

    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    factory.hearing(case, clock.now + timedelta(minutes=5))

    report = await reconciler.sweep_hearing_reminders()

    assert report.scanned == 0
    assert db.query(Notification).count() == 0
