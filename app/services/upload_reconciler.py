"""
app/services/upload_reconciler.py

Replaces all rate rows of one property or competitor with the contents of a
freshly uploaded CSV, and keeps an audit record of the stored file.

Per entity the order is fixed:

    1. decode + parse the CSV          (FormatError / EmptyDatasetError)
    2. check session and ownership     (AuthError / EntityNotFoundError)
    3. save the raw file               (StorageError, nothing deleted)
    4. delete every existing rate row  (StoreError, existing rows kept)
    5. insert the new rows             (StoreError / RatesClearedError)
    6. record the upload

With ``atomic_replace`` steps 4–6 share one database transaction and any
failure rolls the delete back. Without it the delete is committed on its
own, so an insert failure leaves the entity with zero rows; that case is
raised as RatesClearedError so callers can tell it apart.
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
from app.domain.rates import (
    BatchRefreshSummary,
    BatchStatus,
    EntityRef,
    EntityRefreshOutcome,
    ParsedRate,
    RateRecordInput,
    ReconcileResult,
)
from app.errors import AuthError, EmptyDatasetError, EntityNotFoundError, FormatError, PartialBatchError, RateIngestionError
from app.logging_utils import log_event
from app.parsers.rate_csv import parse_rate_csv
from app.repositories.entity_repository import EntityRepository
from app.repositories.rate_repository import RateRepository
from app.repositories.upload_repository import UploadRecordRepository
from db.repositories.errors import RateRepositoryError, RatesClearedError, StorageError, StoreError
from db.repositories.storage import FileStorageBackend, LocalFileStorage, StoredFileMetadata

logger = logging.getLogger(__name__)


class UploadReconciler:
    """
    Coordinates CSV parsing, blob storage and the delete-then-insert replace.
    """

    def __init__(
        self,
        *,
        storage_backend: FileStorageBackend,
        default_currency: str = "THB",
        atomic_replace: bool = True,
        insert_batch_size: int = 1000,
        rate_repository_factory: Callable[[Session], RateRepository] = RateRepository,
        upload_repository_factory: Callable[[Session], UploadRecordRepository] = UploadRecordRepository,
        entity_repository_factory: Callable[[Session], EntityRepository] = EntityRepository,
    ) -> None:
        self._storage_backend = storage_backend
        self._default_currency = default_currency
        self._atomic_replace = atomic_replace
        self._insert_batch_size = max(1, insert_batch_size)
        self._rate_repository_factory = rate_repository_factory
        self._upload_repository_factory = upload_repository_factory
        self._entity_repository_factory = entity_repository_factory

    def reconcile_csv(
        self,
        *,
        db: Session,
        entity: EntityRef,
        content: bytes,
        user_id: uuid.UUID | None,
    ) -> ReconcileResult:
        """
        Replace the entity's rates with the rows parsed from ``content``.
        """

        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise FormatError("CSV must be UTF-8 encoded.") from exc

        parsed = parse_rate_csv(text)
        if not parsed.entries:
            raise EmptyDatasetError(
                f"No valid rates found in CSV ({len(parsed.errors)} row(s) rejected)."
            )

        if user_id is None:
            raise AuthError("No active session.")
        self._ensure_owned(db=db, entity=entity, user_id=user_id)

        stored = self._storage_backend.save(
            user_id=user_id,
            entity_type=entity.entity_type,
            entity_id=entity.entity_id,
            content=content,
        )

        records = self._build_records(entity=entity, entries=parsed.entries)
        if self._atomic_replace:
            deleted, inserted, upload_id = self._replace_atomically(
                db=db,
                entity=entity,
                records=records,
                stored=stored,
                user_id=user_id,
            )
        else:
            deleted, inserted, upload_id = self._replace_in_steps(
                db=db,
                entity=entity,
                records=records,
                stored=stored,
                user_id=user_id,
            )

        log_event(
            logger,
            logging.INFO,
            "rate_csv_reconciled",
            entity=str(entity),
            rows_deleted=deleted,
            rows_inserted=inserted,
            rows_rejected=len(parsed.errors),
            file_path=stored.storage_path,
        )
        return ReconcileResult(
            entity=entity,
            upload_id=upload_id,
            file_path=stored.storage_path,
            rows_deleted=deleted,
            rows_inserted=inserted,
            rows_skipped=len(parsed.errors),
            validation_errors=list(parsed.errors),
        )

    def refresh_property(
        self,
        *,
        db: Session,
        property_id: uuid.UUID,
        user_id: uuid.UUID | None,
    ) -> BatchRefreshSummary:
        """
        Re-run reconciliation for a property and each of its competitors from
        their most recent stored upload.

        Entities are independent: one failure never stops the others. Raises
        PartialBatchError only when files existed but none of them succeeded.
        """

        if user_id is None:
            raise AuthError("No active session.")

        entities_repo = self._entity_repository_factory(db)
        uploads_repo = self._upload_repository_factory(db)
        try:
            found_property = entities_repo.get_property(property_id)
            if found_property is None or found_property.user_id != user_id:
                raise EntityNotFoundError(f"Property not found: {property_id}")
            targets: list[tuple[EntityRef, str]] = [
                (EntityRef.for_property(found_property.id), found_property.name)
            ]
            targets.extend(
                (EntityRef.for_competitor(competitor.id), competitor.name)
                for competitor in entities_repo.list_competitors(found_property.id)
            )
        except SQLAlchemyError as exc:
            raise StoreError("Failed to load property and competitors.") from exc

        outcomes: list[EntityRefreshOutcome] = []
        for entity, name in targets:
            outcomes.append(
                self._refresh_entity(
                    db=db,
                    uploads_repo=uploads_repo,
                    entity=entity,
                    name=name,
                    user_id=user_id,
                )
            )

        summary = BatchRefreshSummary.from_outcomes(outcomes)
        log_event(
            logger,
            logging.INFO if summary.status != BatchStatus.FAILED else logging.ERROR,
            "rate_refresh_completed",
            property_id=property_id,
            status=summary.status,
            total_processed=summary.total_processed,
            files_processed=summary.files_processed,
            errors=summary.errors,
        )
        if summary.status == BatchStatus.FAILED:
            raise PartialBatchError(summary)
        return summary

    def _refresh_entity(
        self,
        *,
        db: Session,
        uploads_repo: UploadRecordRepository,
        entity: EntityRef,
        name: str,
        user_id: uuid.UUID,
    ) -> EntityRefreshOutcome:
        try:
            latest = uploads_repo.latest_for_entity(entity)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Upload lookup failed entity=%s: %s", entity, exc)
            return EntityRefreshOutcome(entity=entity, name=name, error=f"{name}: upload lookup failed")

        if latest is None:
            return EntityRefreshOutcome(
                entity=entity,
                name=name,
                has_file=False,
                error=f"No CSV uploaded for {name}",
            )

        try:
            content = self._storage_backend.read(storage_path=latest.file_path)
            result = self.reconcile_csv(db=db, entity=entity, content=content, user_id=user_id)
        except (RateIngestionError, RateRepositoryError) as exc:
            logger.warning("Refresh failed entity=%s name=%r: %s", entity, name, exc)
            return EntityRefreshOutcome(entity=entity, name=name, error=f"{name}: {exc}")

        return EntityRefreshOutcome(entity=entity, name=name, rows_processed=result.rows_inserted)

    def _ensure_owned(self, *, db: Session, entity: EntityRef, user_id: uuid.UUID) -> None:
        try:
            owner_id = self._entity_repository_factory(db).resolve_owner_user_id(entity)
        except SQLAlchemyError as exc:
            raise StoreError("Failed to resolve entity ownership.") from exc
        if owner_id is None or owner_id != user_id:
            raise EntityNotFoundError(f"{entity.entity_type.capitalize()} not found: {entity.entity_id}")

    def _build_records(self, *, entity: EntityRef, entries: list[ParsedRate]) -> list[RateRecordInput]:
        scraped_at = datetime.now(timezone.utc)
        return [
            RateRecordInput(
                entity=entity,
                check_in_date=entry.check_in_date,
                check_out_date=entry.check_out_date or entry.check_in_date + timedelta(days=1),
                price_amount=entry.price_amount,
                currency=entry.currency or self._default_currency,
                room_type=entry.room_type,
                adults=entry.adults,
                scraped_at=scraped_at,
            )
            for entry in entries
        ]

    def _replace_atomically(
        self,
        *,
        db: Session,
        entity: EntityRef,
        records: list[RateRecordInput],
        stored: StoredFileMetadata,
        user_id: uuid.UUID,
    ) -> tuple[int, int, uuid.UUID]:
        rates = self._rate_repository_factory(db)
        uploads = self._upload_repository_factory(db)
        try:
            deleted = rates.delete_for_entity(entity)
            inserted = rates.bulk_insert(records, batch_size=self._insert_batch_size)
            upload = uploads.create(
                user_id=user_id,
                entity=entity,
                stored_file=stored,
                record_count=inserted,
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            self._delete_stored_file_quietly(stored.storage_path)
            logger.error("Rate replace rolled back entity=%s: %s", entity, exc)
            raise StoreError("Failed to replace rates; existing rates were kept.") from exc
        return deleted, inserted, upload.id

    def _replace_in_steps(
        self,
        *,
        db: Session,
        entity: EntityRef,
        records: list[RateRecordInput],
        stored: StoredFileMetadata,
        user_id: uuid.UUID,
    ) -> tuple[int, int, uuid.UUID]:
        rates = self._rate_repository_factory(db)
        uploads = self._upload_repository_factory(db)

        try:
            deleted = rates.delete_for_entity(entity)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            self._delete_stored_file_quietly(stored.storage_path)
            raise StoreError("Failed to delete existing rates; existing rates were kept.") from exc

        try:
            inserted = rates.bulk_insert(records, batch_size=self._insert_batch_size)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            self._delete_stored_file_quietly(stored.storage_path)
            logger.error(
                "Rate insert failed after delete entity=%s deleted=%s: %s",
                entity,
                deleted,
                exc,
            )
            raise RatesClearedError(
                f"Existing rates were deleted but {len(records)} new rate(s) failed to insert; "
                "the entity currently has no rates."
            ) from exc

        try:
            upload = uploads.create(
                user_id=user_id,
                entity=entity,
                stored_file=stored,
                record_count=inserted,
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError("Rates were replaced but the upload record could not be saved.") from exc
        return deleted, inserted, upload.id

    def _delete_stored_file_quietly(self, storage_path: str) -> None:
        try:
            self._storage_backend.delete(storage_path=storage_path)
        except StorageError:
            logger.warning("Could not remove stored file %s after failed replace", storage_path)


@lru_cache(maxsize=1)
def get_upload_reconciler() -> UploadReconciler:
    """
    Build and cache the reconciler with env-driven settings.
    """

    settings = get_rate_upload_settings()
    return UploadReconciler(
        storage_backend=LocalFileStorage(settings.storage_dir),
        default_currency=settings.default_currency,
        atomic_replace=settings.atomic_replace,
        insert_batch_size=settings.insert_batch_size,
    )
