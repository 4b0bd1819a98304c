"""
app/scheduler/jobs.py

APScheduler-based background jobs.

Schedule (all times UTC)
--------------------------
  upload_retention_purge: 03:00 every day

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from app.services.upload_history_service import get_upload_history_service
from db.repositories.errors import StoreError
from db.session import SessionLocal

logger = logging.getLogger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Yield a fresh session and ensure it is closed on exit."""
    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def run_upload_retention_purge() -> None:
    """
    Remove uploads (file and record) older than the retention window.
    """
    logger.info("Scheduler: upload_retention_purge starting")
    with _session_scope() as db:
        try:
            purged = get_upload_history_service().purge_expired_uploads(db=db)
        except StoreError:
            logger.exception("Scheduler: upload_retention_purge failed")
            return
    logger.info("Scheduler: upload_retention_purge removed %d upload(s)", purged)


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_upload_retention_purge,
        trigger="cron",
        hour=3,
        minute=0,
        id="upload_retention_purge",
        name="Daily CSV upload retention purge",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    return scheduler
