# app/core/logger.py
"""
Shared application logger.

Entry points (main, jobs) import ``logger`` from here; service modules use
``logging.getLogger(__name__)`` and inherit the handler configured below.
"""
import logging
import sys

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def _configure_root() -> None:
    root = logging.getLogger()
    if any(getattr(h, "_courtline", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._courtline = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL)

    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


_configure_root()

logger = logging.getLogger("courtline")
