"""
app/services/scrape_trigger_service.py

Forwards an on-demand scrape request for a property and its competitors to
the external worker.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import date
from functools import lru_cache
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.scrape_jobs import ScrapeTriggerResult
from app.errors import AuthError, EntityNotFoundError
from app.logging_utils import log_event
from app.repositories.entity_repository import EntityRepository
from app.services.scrape_job_tracker import get_scrape_worker_client, parse_trigger_response
from db.repositories.errors import StoreError

logger = logging.getLogger(__name__)


class ScrapeWorker(Protocol):
    def trigger_scrape(self, payload: dict[str, Any]) -> dict[str, Any]:
        ...

    def get_task_status(self, task_id: str) -> dict[str, Any]:
        ...


class ScrapeTriggerService:
    def __init__(
        self,
        *,
        worker_factory: Callable[[], ScrapeWorker] = get_scrape_worker_client,
        entity_repository_factory: Callable[[Session], EntityRepository] = EntityRepository,
    ) -> None:
        self._worker_factory = worker_factory
        self._entity_repository_factory = entity_repository_factory

    def trigger(
        self,
        *,
        db: Session,
        user_id: uuid.UUID | None,
        property_id: uuid.UUID,
        date_from: date,
        date_to: date,
        adults: int,
    ) -> dict[str, Any]:
        """
        Return ``{success, message, data}`` wrapping the worker's raw response.

        Raises WorkerError when the worker is unreachable or answers non-2xx.
        """

        if user_id is None:
            raise AuthError("No active session.")

        payload = self.build_payload(
            db=db,
            user_id=user_id,
            property_id=property_id,
            date_from=date_from,
            date_to=date_to,
            adults=adults,
        )
        raw = self._worker_factory().trigger_scrape(payload)
        parsed: ScrapeTriggerResult = parse_trigger_response(raw)
        log_event(
            logger,
            logging.INFO,
            "scrape_triggered",
            property_id=property_id,
            competitors=len(payload["competitors"]),
            total_tasks=parsed.total_tasks,
        )
        return {
            "success": True,
            "message": "Scraping initiated successfully",
            "data": raw,
        }

    def build_payload(
        self,
        *,
        db: Session,
        user_id: uuid.UUID,
        property_id: uuid.UUID,
        date_from: date,
        date_to: date,
        adults: int,
    ) -> dict[str, Any]:
        entities = self._entity_repository_factory(db)
        try:
            found_property = entities.get_property(property_id)
            if found_property is None or found_property.user_id != user_id:
                raise EntityNotFoundError("Property not found")
            competitors = entities.list_competitors(found_property.id)
        except SQLAlchemyError as exc:
            raise StoreError("Failed to fetch property and competitors.") from exc

        return {
            "property": {
                "id": str(found_property.id),
                "name": found_property.name,
                "booking_url": found_property.booking_url,
            },
            "competitors": [
                {
                    "id": str(competitor.id),
                    "name": competitor.name,
                    "booking_url": competitor.booking_url,
                }
                for competitor in competitors
            ],
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
            "adults": adults,
            "user_id": str(user_id),
        }

    def get_task_status(self, task_id: str) -> dict[str, Any]:
        return self._worker_factory().get_task_status(task_id)


@lru_cache(maxsize=1)
def get_scrape_trigger_service() -> ScrapeTriggerService:
    return ScrapeTriggerService()
