"""
Health and readiness checks – verify the database and the reconciliation scheduler.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logger import logger
from app.db.database import get_db

router = APIRouter()


def _check_database(db: Session) -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    try:
        db.execute(text("SELECT 1"))
        return "ok", "Database reachable"
    except Exception as e:
        logger.exception("Database check failed")
        return "error", f"Database: {str(e)}"


def _check_scheduler(request: Request) -> tuple[str, str]:
    if not settings.SCHEDULER_ENABLED:
        return "disabled", "SCHEDULER_ENABLED is false"
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None or not scheduler.running:
        return "error", "Scheduler not running"
    jobs = ", ".join(job.id for job in scheduler.get_jobs())
    return "ok", f"Jobs: {jobs}"


@router.get("/ready")
def readiness(request: Request, db: Session = Depends(get_db)):
    """
    - database: SELECT 1 on the configured store
    - scheduler: reconciliation jobs registered and running
    """
    db_status, db_detail = _check_database(db)
    scheduler_status, scheduler_detail = _check_scheduler(request)

    healthy = db_status == "ok" and scheduler_status in ("ok", "disabled")
    return {
        "status": "healthy" if healthy else "degraded",
        "database": {"status": db_status, "detail": db_detail},
        "scheduler": {"status": scheduler_status, "detail": scheduler_detail},
    }
