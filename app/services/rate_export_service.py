"""
app/services/rate_export_service.py

Backfill export: renders an entity's upcoming stored rates into the upload
CSV layout, stores the file and records it as an upload so a later refresh
can replay it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_rate_upload_settings
from app.domain.rates import EntityRef, RateRecordInput
from app.errors import AuthError
from app.logging_utils import log_event
from app.parsers.rate_csv import RENDERABLE_ADULTS, render_rate_csv
from app.repositories.entity_repository import EntityRepository
from app.repositories.rate_repository import RateRepository
from app.repositories.upload_repository import UploadRecordRepository
from db.models.scraped_rate import ScrapedRate
from db.repositories.errors import StorageError
from db.repositories.storage import FileStorageBackend, LocalFileStorage

logger = logging.getLogger(__name__)

BACKFILL_TAG = "backfill"


@dataclass(frozen=True)
class BackfillFileResult:
    created: bool
    count: int = 0
    file_path: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "count": self.count,
            "file_path": self.file_path,
            "reason": self.reason,
        }


class RateExportService:
    def __init__(
        self,
        *,
        storage_backend: FileStorageBackend,
        days_ahead: int = 60,
        rate_repository_factory: Callable[[Session], RateRepository] = RateRepository,
        upload_repository_factory: Callable[[Session], UploadRecordRepository] = UploadRecordRepository,
        entity_repository_factory: Callable[[Session], EntityRepository] = EntityRepository,
    ) -> None:
        self._storage_backend = storage_backend
        self._days_ahead = max(1, days_ahead)
        self._rate_repository_factory = rate_repository_factory
        self._upload_repository_factory = upload_repository_factory
        self._entity_repository_factory = entity_repository_factory

    def generate_backfill(
        self,
        *,
        db: Session,
        user_id: uuid.UUID | None,
        property_id: uuid.UUID | None = None,
        competitor_ids: Sequence[uuid.UUID] = (),
        days_ahead: int | None = None,
        today: date | None = None,
    ) -> dict[str, Any]:
        """
        Export one CSV per requested entity.

        Entities the caller does not own, or with no rates in the window, are
        reported with ``created: False``; one entity never blocks another.
        """

        if user_id is None:
            raise AuthError("No active session.")

        start, end = self._window(days_ahead=days_ahead, today=today)

        results: dict[str, Any] = {"property": None, "competitors": {}}
        if property_id is not None:
            results["property"] = self.export_entity(
                db=db,
                entity=EntityRef.for_property(property_id),
                user_id=user_id,
                date_from=start,
                date_to=end,
            ).to_dict()
        for competitor_id in competitor_ids:
            results["competitors"][str(competitor_id)] = self.export_entity(
                db=db,
                entity=EntityRef.for_competitor(competitor_id),
                user_id=user_id,
                date_from=start,
                date_to=end,
            ).to_dict()
        return {"ok": True, "results": results}

    def export_upcoming(
        self,
        *,
        db: Session,
        entity: EntityRef,
        user_id: uuid.UUID,
        days_ahead: int | None = None,
        today: date | None = None,
    ) -> BackfillFileResult:
        """Export one entity's rates from today through ``days_ahead`` days out."""

        start, end = self._window(days_ahead=days_ahead, today=today)
        return self.export_entity(db=db, entity=entity, user_id=user_id, date_from=start, date_to=end)

    def _window(self, *, days_ahead: int | None, today: date | None) -> tuple[date, date]:
        start = today or datetime.now(timezone.utc).date()
        return start, start + timedelta(days=days_ahead if days_ahead and days_ahead > 0 else self._days_ahead)

    def export_entity(
        self,
        *,
        db: Session,
        entity: EntityRef,
        user_id: uuid.UUID,
        date_from: date,
        date_to: date,
    ) -> BackfillFileResult:
        try:
            owner_id = self._entity_repository_factory(db).resolve_owner_user_id(entity)
            if owner_id is None or owner_id != user_id:
                return BackfillFileResult(created=False, reason="not found")
            rows = self._rate_repository_factory(db).list_for_entity(
                entity,
                date_from=date_from,
                date_to=date_to,
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Backfill query failed for %s: %s", entity, exc)
            return BackfillFileResult(created=False, reason="query failed")

        records = [_to_record(entity, row) for row in rows if row.adults in RENDERABLE_ADULTS]
        if not records:
            return BackfillFileResult(created=False, reason="no rates in window")

        try:
            stored = self._storage_backend.save(
                user_id=owner_id,
                entity_type=entity.entity_type,
                entity_id=entity.entity_id,
                content=render_rate_csv(records).encode("utf-8"),
                tag=BACKFILL_TAG,
            )
        except StorageError as exc:
            logger.warning("Backfill upload failed for %s: %s", entity, exc)
            return BackfillFileResult(created=False, reason="storage failed")

        try:
            self._upload_repository_factory(db).create(
                user_id=owner_id,
                entity=entity,
                stored_file=stored,
                record_count=len(records),
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Backfill record failed for %s: %s", entity, exc)
            try:
                self._storage_backend.delete(storage_path=stored.storage_path)
            except StorageError:
                logger.warning("Could not remove orphaned backfill file %s", stored.storage_path)
            return BackfillFileResult(created=False, reason="store failed")

        log_event(
            logger,
            logging.INFO,
            "backfill_csv_created",
            entity=str(entity),
            count=len(records),
            file_path=stored.storage_path,
        )
        return BackfillFileResult(created=True, count=len(records), file_path=stored.storage_path)


def _to_record(entity: EntityRef, row: ScrapedRate) -> RateRecordInput:
    return RateRecordInput(
        entity=entity,
        check_in_date=row.check_in_date,
        check_out_date=row.check_out_date,
        price_amount=row.price_amount,
        currency=row.currency,
        room_type=row.room_type,
        adults=row.adults,
        scraped_at=row.scraped_at,
    )


@lru_cache(maxsize=1)
def get_rate_export_service() -> RateExportService:
    settings = get_rate_upload_settings()
    return RateExportService(
        storage_backend=LocalFileStorage(settings.storage_dir),
        days_ahead=settings.backfill_days_ahead,
    )
