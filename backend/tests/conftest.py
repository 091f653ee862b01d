"""Pytest configuration and fixtures"""

import os
from datetime import datetime, timedelta
from itertools import count

# Set test environment variables BEFORE any app imports
# Settings are read once at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.database import Base, get_db
from app.db.models import (
    AdvocateEngagementStatus,
    Case,
    CaseAdvocate,
    CaseStatus,
    CaseType,
    CourtLevel,
    Hearing,
    HearingStatus,
    HearingType,
    User,
    UserRole,
)
from app.services.notification_service import NotificationDispatcher, ReminderDedupCache
from app.services.reconciliation import HearingReconciler


class FakeClock:
    """Settable clock shared by the dedup cache and the reconciler."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 10, 0, 0))


@pytest.fixture
def session_factory(tmp_path):
    """
    File-backed SQLite per test: the dispatcher writes through its own
    sessions, so an in-memory database would not be shared.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'courtline-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def dedup_cache(clock):
    return ReminderDedupCache(window=timedelta(minutes=10), clock=clock)


@pytest.fixture
def dispatcher(session_factory, dedup_cache):
    return NotificationDispatcher(session_factory, dedup_cache=dedup_cache)


@pytest.fixture
def reconciler(session_factory, dispatcher, clock):
    return HearingReconciler(session_factory, dispatcher, clock=clock)


# ============================================================================
# Factories
# ============================================================================

class Factory:
    _seq = count(1)

    def __init__(self, db):
        self.db = db

    def user(self, role: UserRole, name: str = None) -> User:
        n = next(self._seq)
        user = User(
            name=name or f"{role.value.title()} {n}",
            email=f"{role.value}{n}@courtline.test",
            role=role,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def case(self, litigant: User, status: CaseStatus = CaseStatus.approved, advocates=(), **kwargs) -> Case:
        n = next(self._seq)
        case = Case(
            case_number=kwargs.pop("case_number", f"TEST{n:06d}"),
            title=kwargs.pop("title", f"Boundary dispute {n}"),
            description=kwargs.pop("description", "Dispute over the eastern boundary wall"),
            case_type=kwargs.pop("case_type", CaseType.civil),
            court=kwargs.pop("court", CourtLevel.district),
            status=status,
            litigant_id=litigant.id,
            **kwargs,
        )
        for advocate in advocates:
            case.advocate_links.append(
                CaseAdvocate(advocate_id=advocate.id, status=AdvocateEngagementStatus.accepted)
            )
        self.db.add(case)
        self.db.commit()
        return case

    def hearing(
        self,
        case: Case,
        date: datetime,
        duration: int = 30,
        status: HearingStatus = HearingStatus.scheduled,
        hearing_type: HearingType = HearingType.physical,
        **kwargs,
    ) -> Hearing:
        hearing = Hearing(
            case_id=case.id,
            date=date,
            duration=duration,
            status=status,
            hearing_type=hearing_type,
            court_room=kwargs.pop("court_room", "Court Room 4"),
            **kwargs,
        )
        self.db.add(hearing)
        self.db.commit()
        return hearing


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def officer(factory):
    return factory.user(UserRole.court_officer, "Registrar Iyer")


@pytest.fixture
def litigant(factory):
    return factory.user(UserRole.litigant, "Meera Nair")


@pytest.fixture
def advocate(factory):
    return factory.user(UserRole.advocate, "Adv. Thomas")


# ============================================================================
# HTTP
# ============================================================================

def auth_headers(user: User) -> dict:
    token = jwt.encode({"sub": str(user.id)}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(session_factory, dispatcher):
    from app.api.v1.deps import get_dispatcher
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    return auth_headers
