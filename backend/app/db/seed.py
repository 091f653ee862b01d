# backend/app/db/seed.py

"""
Database Seeding Script

Creates demo data for local development: one user per role, a case that went
through request -> payment -> approval, and an upcoming hearing.

    python -m app.db.seed
"""

import asyncio
from datetime import timedelta

from app.db.database import SessionLocal, init_db
from app.db.models import CaseType, CourtLevel, HearingType, User, UserRole
from app.services import lifecycle_service
from app.services.notification_service import NotificationDispatcher
from app.utils.helpers import utcnow

DEMO_USERS = [
    ("Meera Nair", "litigant@courtline.dev", UserRole.litigant),
    ("Adv. Thomas Kurian", "advocate@courtline.dev", UserRole.advocate),
    ("Registrar Iyer", "officer@courtline.dev", UserRole.court_officer),
]


def create_demo_users(db) -> dict:
    users = {}
    for name, email, role in DEMO_USERS:
        user = User(name=name, email=email, role=role)
        db.add(user)
        users[role] = user
    db.commit()
    print(f"✅ Created {len(users)} users")
    return users


def create_demo_case(db, dispatcher: NotificationDispatcher, users: dict):
    """Request -> accept with fee -> simulated payment -> hearing in two days."""
    litigant = users[UserRole.litigant]
    advocate = users[UserRole.advocate]
    officer = users[UserRole.court_officer]

    def fan_out(result):
        asyncio.run(dispatcher.dispatch(result.notifications))
        return result

    request = fan_out(lifecycle_service.create_case_request(
        db,
        litigant,
        advocate.id,
        case_title="Partition of ancestral property",
        case_description="Co-owners refuse partition of the family home in Thrissur",
        case_type=CaseType.property,
        court=CourtLevel.district,
        message="Please take up my partition suit",
    )).case_request

    fan_out(lifecycle_service.respond_to_case_request(db, request.id, advocate, "accepted", payment_amount=5000))
    paid = fan_out(lifecycle_service.simulate_payment(db, request.id, litigant))

    scheduled = fan_out(lifecycle_service.schedule_hearing(
        db,
        paid.case.id,
        officer,
        date=utcnow().replace(second=0, microsecond=0) + timedelta(days=2),
        hearing_type=HearingType.physical,
        duration=45,
        court_room="Court Room 4",
    ))
    print(f"✅ Created case {paid.case.case_number} with hearing {scheduled.hearing.id}")
    return scheduled.case


def seed_database(session_factory=SessionLocal):
    """
    Main seeding function.
    Leaves an already-populated database untouched.
    """
    print("\n" + "=" * 80)
    print("🌱 Seeding Courtline Database")
    print("=" * 80 + "\n")

    if session_factory is SessionLocal:
        init_db()

    db = session_factory()
    try:
        if db.query(User).count() > 0:
            print("⚠️  Database already contains data, skipping")
            return None

        dispatcher = NotificationDispatcher(session_factory)
        users = create_demo_users(db)
        case = create_demo_case(db, dispatcher, users)

        print("\n📊 Demo users:")
        for name, email, role in DEMO_USERS:
            print(f"   • {role.value:<14} {name} <{email}>")
        return case.id
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
