"""
app/api/routers/scrape.py

On-demand scrape trigger and task status passthrough.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.dependencies import get_current_user_id
from app.api.errors import to_http_exception
from app.errors import RateIngestionError
from app.schemas.scrape import ScrapeTaskStatusResponse, ScrapeTriggerRequest, ScrapeTriggerResponse
from app.services.scrape_trigger_service import ScrapeTriggerService, get_scrape_trigger_service
from db.repositories.errors import RateRepositoryError
from db.session import get_db

router = APIRouter(prefix="/scrape", tags=["scrape"])


@router.post("/trigger", response_model=ScrapeTriggerResponse)
def trigger_scrape(
    request: ScrapeTriggerRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: ScrapeTriggerService = Depends(get_scrape_trigger_service),
) -> ScrapeTriggerResponse:
    """
    Send a scrape request for the property and its competitors to the worker.
    """

    try:
        result = service.trigger(
            db=db,
            user_id=user_id,
            property_id=request.property_id,
            date_from=request.date_from,
            date_to=request.date_to,
            adults=request.adults,
        )
    except (RateIngestionError, RateRepositoryError) as exc:
        raise to_http_exception(exc) from exc
    return ScrapeTriggerResponse(**result)


@router.get("/status/{task_id}", response_model=ScrapeTaskStatusResponse)
def get_scrape_status(
    task_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: ScrapeTriggerService = Depends(get_scrape_trigger_service),
) -> ScrapeTaskStatusResponse:
    if not task_id.strip():
        raise HTTPException(status_code=400, detail="task_id is required.")
    try:
        payload = service.get_task_status(task_id)
    except RateIngestionError as exc:
        raise to_http_exception(exc) from exc

    progress = payload.get("progress")
    task_status = payload.get("status")
    return ScrapeTaskStatusResponse(
        task_id=task_id,
        status=str(task_status) if task_status is not None else None,
        progress=progress if isinstance(progress, (int, float)) and not isinstance(progress, bool) else None,
        message=payload.get("message"),
        raw=payload,
    )
