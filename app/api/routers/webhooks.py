"""
app/api/routers/webhooks.py

Rate push endpoint for the external scrape worker.

Authentication is a shared secret header, checked before the body is read.
Errors are returned as ``{"error": ...}``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import WebhookSettings, get_webhook_settings
from app.errors import FormatError
from app.services.webhook_ingestion_service import (
    WebhookIngestionService,
    get_webhook_ingestion_service,
    verify_webhook_secret,
)
from db.repositories.errors import StoreError
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.post("/scraper")
async def receive_scraper_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: WebhookSettings = Depends(get_webhook_settings),
    service: WebhookIngestionService = Depends(get_webhook_ingestion_service),
) -> Any:
    if not settings.secret:
        logger.error("SCRAPER_WEBHOOK_SECRET is not configured")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server is missing webhook secret")

    if not verify_webhook_secret(request.headers.get(settings.header_name), settings.secret):
        logger.warning("Rejected webhook call with invalid secret")
        return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    try:
        body = await request.json()
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, "Body must be valid JSON")

    try:
        return await run_in_threadpool(service.ingest, db=db, body=body)
    except FormatError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    except StoreError as exc:
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to save rates",
            details=str(exc.__cause__ or exc),
        )
