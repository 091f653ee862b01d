"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.v1.api import api_router
from app.core.logger import logger
from app.db.database import SessionLocal
from app.services.background_jobs import shutdown_scheduler, start_scheduler
from app.services.notification_service import NotificationDispatcher, ReminderDedupCache
from app.services.reconciliation import HearingReconciler


def build_dispatcher(session_factory=SessionLocal) -> NotificationDispatcher:
    """One dispatcher (and one reminder dedup cache) per process."""
    cache = ReminderDedupCache(window=timedelta(minutes=settings.REMINDER_DEDUP_WINDOW_MINUTES))
    return NotificationDispatcher(session_factory, dedup_cache=cache)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Courtline API started")
    app.state.dispatcher = build_dispatcher()
    app.state.reconciler = HearingReconciler(SessionLocal, app.state.dispatcher)
    app.state.scheduler = None

    # Fails startup if the store is unreachable
    if settings.SCHEDULER_ENABLED:
        app.state.scheduler = start_scheduler(app.state.reconciler)
    else:
        logger.info("Reconciliation scheduler disabled")

    yield

    shutdown_scheduler()
    logger.info("Courtline API shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api_router, prefix="/api/v1")

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {"message": "Courtline API is running", "version": "1.0.0", "docs": "/docs"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
