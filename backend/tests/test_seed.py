"""Tests for the development seed script."""

from app.db.models import Case, CaseStatus, Hearing, Notification, Payment, User
from app.db.seed import seed_database


def test_seed_builds_demo_case(db, session_factory):
    case_id = seed_database(session_factory)

    case = db.get(Case, case_id)
    assert case.status == CaseStatus.scheduled_hearing
    assert case.payment_reference.startswith("SIM-")
    assert db.query(User).count() == 3
    assert db.query(Payment).count() == 1
    assert db.query(Hearing).filter(Hearing.case_id == case_id).count() == 1
    assert db.query(Notification).count() > 0


def test_seed_skips_populated_database(session_factory, litigant):
    assert seed_database(session_factory) is None
