# backend/app/db/__init__.py

"""
Persistence layer: engine/session setup, ORM models for cases, hearings,
case requests, payments and notifications, and the API schemas.
"""

from app.db.database import Base, SessionLocal, engine, get_db, init_db

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_db",
    "init_db",
]
