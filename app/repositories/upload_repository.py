"""
app/repositories/upload_repository.py

Persistence for CSV upload audit records.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.rates import EntityRef, EntityType
from db.models.csv_upload import CSVUpload
from db.repositories.storage import StoredFileMetadata


class UploadRecordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(
        self,
        *,
        user_id: uuid.UUID,
        entity: EntityRef,
        stored_file: StoredFileMetadata,
        record_count: int,
    ) -> CSVUpload:
        upload = CSVUpload(
            id=uuid.uuid4(),
            user_id=user_id,
            property_id=entity.property_id,
            competitor_id=entity.competitor_id,
            file_name=stored_file.file_name,
            file_path=stored_file.storage_path,
            record_count=record_count,
            uploaded_at=stored_file.stored_at,
        )
        self._session.add(upload)
        self._session.flush()
        return upload

    def get(self, upload_id: uuid.UUID) -> CSVUpload | None:
        return self._session.get(CSVUpload, upload_id)

    def latest_for_entity(self, entity: EntityRef) -> CSVUpload | None:
        uploads = self.list_recent(entity=entity, limit=1)
        return uploads[0] if uploads else None

    def list_recent(
        self,
        *,
        entity: EntityRef | None = None,
        user_id: uuid.UUID | None = None,
        limit: int = 10,
    ) -> list[CSVUpload]:
        """
        Most recent uploads first, optionally scoped to an entity and/or user.
        """

        stmt = select(CSVUpload)
        if entity is not None:
            if entity.entity_type == EntityType.PROPERTY:
                stmt = stmt.where(CSVUpload.property_id == entity.entity_id)
            else:
                stmt = stmt.where(CSVUpload.competitor_id == entity.entity_id)
        if user_id is not None:
            stmt = stmt.where(CSVUpload.user_id == user_id)
        stmt = stmt.order_by(CSVUpload.uploaded_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def list_older_than(self, cutoff: datetime) -> list[CSVUpload]:
        stmt = select(CSVUpload).where(CSVUpload.uploaded_at < cutoff).order_by(CSVUpload.uploaded_at)
        return list(self._session.scalars(stmt).all())

    def delete(self, upload: CSVUpload) -> None:
        self._session.delete(upload)
        self._session.flush()
