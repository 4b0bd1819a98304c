"""
app/services/upload_history_service.py

Upload history: recent uploads per user or entity, download of the stored
file, user-initiated delete and retention purge.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_rate_upload_settings
from app.domain.rates import EntityRef
from app.errors import AuthError, EntityNotFoundError
from app.logging_utils import log_event
from app.repositories.entity_repository import EntityRepository
from app.repositories.upload_repository import UploadRecordRepository
from db.models.csv_upload import CSVUpload
from db.repositories.errors import StorageError, StoreError
from db.repositories.storage import FileStorageBackend, LocalFileStorage

logger = logging.getLogger(__name__)


class UploadHistoryService:
    def __init__(
        self,
        *,
        storage_backend: FileStorageBackend,
        history_limit: int = 10,
        retention_days: int = 90,
        upload_repository_factory: Callable[[Session], UploadRecordRepository] = UploadRecordRepository,
        entity_repository_factory: Callable[[Session], EntityRepository] = EntityRepository,
    ) -> None:
        self._storage_backend = storage_backend
        self._history_limit = max(1, history_limit)
        self._retention_days = max(1, retention_days)
        self._upload_repository_factory = upload_repository_factory
        self._entity_repository_factory = entity_repository_factory

    def list_uploads(
        self,
        *,
        db: Session,
        user_id: uuid.UUID | None,
        entity: EntityRef | None = None,
        limit: int | None = None,
    ) -> list[CSVUpload]:
        """
        Most recent uploads of the caller, newest first.
        """

        if user_id is None:
            raise AuthError("No active session.")
        effective_limit = min(limit, self._history_limit) if limit else self._history_limit
        try:
            if entity is not None:
                owner_id = self._entity_repository_factory(db).resolve_owner_user_id(entity)
                if owner_id != user_id:
                    raise EntityNotFoundError(f"{entity.entity_type.capitalize()} not found: {entity.entity_id}")
            return self._upload_repository_factory(db).list_recent(
                entity=entity,
                user_id=user_id,
                limit=effective_limit,
            )
        except SQLAlchemyError as exc:
            raise StoreError("Failed to load upload history.") from exc

    def read_upload(
        self,
        *,
        db: Session,
        upload_id: uuid.UUID,
        user_id: uuid.UUID | None,
    ) -> tuple[CSVUpload, bytes]:
        upload = self._get_owned(db=db, upload_id=upload_id, user_id=user_id)
        return upload, self._storage_backend.read(storage_path=upload.file_path)

    def delete_upload(
        self,
        *,
        db: Session,
        upload_id: uuid.UUID,
        user_id: uuid.UUID | None,
    ) -> None:
        """
        Remove the stored file, then the audit record. Rate rows are kept.
        """

        upload = self._get_owned(db=db, upload_id=upload_id, user_id=user_id)
        self._storage_backend.delete(storage_path=upload.file_path)
        try:
            self._upload_repository_factory(db).delete(upload)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError("Stored file removed but the upload record could not be deleted.") from exc
        log_event(logger, logging.INFO, "csv_upload_deleted", upload_id=upload_id, file_path=upload.file_path)

    def purge_expired_uploads(self, *, db: Session, now: datetime | None = None) -> int:
        """
        Delete uploads older than the retention window. Returns how many went.

        A file that cannot be removed keeps its record for the next run.
        """

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=self._retention_days)
        uploads_repo = self._upload_repository_factory(db)
        try:
            expired = uploads_repo.list_older_than(cutoff)
        except SQLAlchemyError as exc:
            raise StoreError("Failed to list expired uploads.") from exc

        purged = 0
        for upload in expired:
            try:
                self._storage_backend.delete(storage_path=upload.file_path)
            except StorageError as exc:
                logger.warning("Retention purge could not remove %s: %s", upload.file_path, exc)
                continue
            try:
                uploads_repo.delete(upload)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning("Retention purge could not delete record %s: %s", upload.id, exc)
                continue
            purged += 1

        log_event(
            logger,
            logging.INFO,
            "csv_upload_retention_purge",
            cutoff=cutoff.isoformat(),
            expired=len(expired),
            purged=purged,
        )
        return purged

    def _get_owned(self, *, db: Session, upload_id: uuid.UUID, user_id: uuid.UUID | None) -> CSVUpload:
        if user_id is None:
            raise AuthError("No active session.")
        try:
            upload = self._upload_repository_factory(db).get(upload_id)
        except SQLAlchemyError as exc:
            raise StoreError("Failed to load upload.") from exc
        if upload is None or upload.user_id != user_id:
            raise EntityNotFoundError(f"Upload not found: {upload_id}")
        return upload


@lru_cache(maxsize=1)
def get_upload_history_service() -> UploadHistoryService:
    settings = get_rate_upload_settings()
    return UploadHistoryService(
        storage_backend=LocalFileStorage(settings.storage_dir),
        history_limit=settings.history_limit,
        retention_days=settings.retention_days,
    )
