"""
app/main.py

FastAPI entrypoint for the rate reconciler.

Startup order: environment validation, logging, then (in the lifespan) rate
store connectivity, rate table presence, CSV storage directory and the
retention scheduler.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

logger = logging.getLogger(__name__)


def _validate_env() -> None:
    """
    Collect every missing or invalid required setting and raise once.

    A resolvable database URL and AUTH_JWT_SECRET are required. Without
    SCRAPER_WEBHOOK_SECRET the webhook answers 500; without SCRAPE_WORKER_URL
    the scrape trigger answers 502. Both only warn here.
    """

    from app.config import get_auth_settings, get_scrape_worker_settings, get_webhook_settings
    from db.config import get_database_settings

    errors: list[str] = []
    try:
        get_database_settings()
    except RuntimeError as exc:
        errors.append(str(exc))

    if not get_auth_settings().jwt_secret:
        errors.append("AUTH_JWT_SECRET is not set; user sessions cannot be verified.")

    if not get_webhook_settings().secret:
        logger.warning("SCRAPER_WEBHOOK_SECRET is not set; /webhooks/scraper will reject every call.")
    if not get_scrape_worker_settings().base_url:
        logger.warning("SCRAPE_WORKER_URL is not set; /scrape endpoints will fail.")

    if errors:
        raise RuntimeError(
            "Startup validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
        )


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_rate_store() -> None:
    """
    Fail startup when the database is unreachable or a rate table is missing.

    Migrations are never applied here.
    """

    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    import db.models  # noqa: F401  registers the rate tables on Base.metadata
    from db.base import Base
    from db.session import get_engine

    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
            present = set(sa_inspect(connection).get_table_names())
    except SQLAlchemyError as exc:
        raise RuntimeError("Rate store unavailable.") from exc

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        logger.critical("Rate store is missing tables: %s. Run 'alembic upgrade head'.", ", ".join(missing))
        raise RuntimeError(f"Rate store is missing tables ({', '.join(missing)}). Run migrations and restart.")


def _ensure_storage_dir() -> Path:
    from app.config import get_rate_upload_settings

    storage_dir = Path(get_rate_upload_settings().storage_dir)
    storage_dir.mkdir(parents=True, exist_ok=True)
    return storage_dir


def _scheduler_enabled() -> bool:
    return os.getenv("RATE_SCHEDULER_ENABLED", "true").strip().lower() in {"1", "true", "yes", "on"}


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    _check_rate_store()
    logger.info("Rate store reachable and schema present")
    logger.info("CSV storage at %s", _ensure_storage_dir().resolve())

    if not _scheduler_enabled():
        logger.info("Retention scheduler disabled")
        yield
        return

    from app.scheduler.jobs import build_scheduler

    scheduler = build_scheduler()
    scheduler.start()
    logger.info("Scheduler started with %d job(s)", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler shut down")


def create_app() -> FastAPI:
    _configure_logging()
    _validate_env()

    application = FastAPI(
        title="Rate Reconciler API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import rate_uploads_router, scrape_router, webhooks_router

    application.include_router(rate_uploads_router)
    application.include_router(scrape_router)
    application.include_router(webhooks_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
