"""
app/services/webhook_ingestion_service.py

Ingestion of rate rows pushed by the external scrape worker.

Two body shapes are accepted:

- rate records: a single object, ``{"data": [...]}`` or a bare array;
- task notifications: ``{"task_id", "status", "data": {"rates": [...], ...}}``.
  Without rates, a notification naming an owner exports that owner's stored
  upcoming rates as a CSV upload.

Records are appended; nothing is de-duplicated against existing rows.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_rate_upload_settings
from app.domain.rates import DEFAULT_ADULTS, EntityRef, RateRecordInput, WebhookIngestionSummary
from app.errors import FormatError
from app.logging_utils import log_event
from app.parsers.rate_csv import RENDERABLE_ADULTS, normalize_rate_date, render_rate_csv
from app.repositories.entity_repository import EntityRepository
from app.repositories.rate_repository import RateRepository
from app.repositories.upload_repository import UploadRecordRepository
from app.services.rate_export_service import BackfillFileResult, RateExportService
from db.repositories.errors import StorageError, StoreError
from db.repositories.storage import FileStorageBackend, LocalFileStorage

logger = logging.getLogger(__name__)

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "price_amount": ("price_amount", "price", "amount"),
    "check_in_date": ("check_in_date", "checkIn", "check_in"),
    "check_out_date": ("check_out_date", "checkOut", "check_out"),
    "currency": ("currency",),
    "adults": ("adults",),
    "room_type": ("room_type",),
    "property_id": ("property_id",),
    "competitor_id": ("competitor_id",),
}

SNAPSHOT_TAG = "webhook"


class InvalidWebhookRecord(ValueError):
    """Raised for a pushed record that cannot become a rate row."""


def verify_webhook_secret(provided: str | None, expected: str) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def is_task_notification(body: Any) -> bool:
    return isinstance(body, Mapping) and bool(body.get("task_id")) and bool(body.get("status"))


def normalize_webhook_body(body: Any) -> list[Any]:
    """
    Flatten the accepted body shapes into a list of raw records.
    """

    if isinstance(body, list):
        return list(body)
    if isinstance(body, Mapping):
        data = body.get("data")
        if isinstance(data, list):
            return list(data)
        return [body]
    raise FormatError("Webhook body must be a JSON object or array.")


def pick_field(record: Mapping[str, Any], field_name: str) -> Any:
    """
    Return the first non-empty value among the aliases of ``field_name``.
    """

    for alias in FIELD_ALIASES[field_name]:
        value = record.get(alias)
        if value is not None and value != "":
            return value
    return None


def coerce_webhook_record(
    record: Any,
    *,
    default_currency: str,
    inherited_property_id: Any = None,
    inherited_competitor_id: Any = None,
    scraped_at: datetime | None = None,
) -> RateRecordInput:
    """
    Validate one pushed record. Raises InvalidWebhookRecord with the reason.
    """

    if not isinstance(record, Mapping):
        raise InvalidWebhookRecord("record is not an object")

    price = _parse_price(pick_field(record, "price_amount"))
    check_in = _parse_date(pick_field(record, "check_in_date"), "check_in_date")
    check_out = _parse_date(pick_field(record, "check_out_date"), "check_out_date")
    if check_out <= check_in:
        raise InvalidWebhookRecord("check_out_date must be after check_in_date")

    property_id = pick_field(record, "property_id")
    competitor_id = pick_field(record, "competitor_id")
    if property_id is None and competitor_id is None:
        property_id = inherited_property_id
        competitor_id = inherited_competitor_id
    try:
        entity = EntityRef.from_owner_ids(
            property_id=_parse_uuid(property_id),
            competitor_id=_parse_uuid(competitor_id),
        )
    except ValueError as exc:
        raise InvalidWebhookRecord(str(exc)) from exc

    currency = str(pick_field(record, "currency") or default_currency).strip().upper()
    if len(currency) != 3:
        raise InvalidWebhookRecord(f"invalid currency {currency!r}")

    raw_adults = pick_field(record, "adults")
    try:
        adults = int(raw_adults) if raw_adults is not None else DEFAULT_ADULTS
    except (TypeError, ValueError) as exc:
        raise InvalidWebhookRecord(f"invalid adults {raw_adults!r}") from exc
    if adults <= 0:
        raise InvalidWebhookRecord("adults must be positive")

    room_type = pick_field(record, "room_type")
    return RateRecordInput(
        entity=entity,
        check_in_date=check_in,
        check_out_date=check_out,
        price_amount=price,
        currency=currency,
        room_type=str(room_type) if room_type is not None else None,
        adults=adults,
        scraped_at=scraped_at,
    )


class WebhookIngestionService:
    """
    Validates pushed records and appends them in one batch per request.
    """

    def __init__(
        self,
        *,
        storage_backend: FileStorageBackend,
        default_currency: str = "THB",
        insert_batch_size: int = 1000,
        rate_repository_factory: Callable[[Session], RateRepository] = RateRepository,
        upload_repository_factory: Callable[[Session], UploadRecordRepository] = UploadRecordRepository,
        entity_repository_factory: Callable[[Session], EntityRepository] = EntityRepository,
        rate_exporter: RateExportService | None = None,
    ) -> None:
        self._storage_backend = storage_backend
        self._default_currency = default_currency
        self._insert_batch_size = max(1, insert_batch_size)
        self._rate_repository_factory = rate_repository_factory
        self._upload_repository_factory = upload_repository_factory
        self._entity_repository_factory = entity_repository_factory
        self._rate_exporter = rate_exporter or RateExportService(
            storage_backend=storage_backend,
            rate_repository_factory=rate_repository_factory,
            upload_repository_factory=upload_repository_factory,
            entity_repository_factory=entity_repository_factory,
        )

    def ingest(self, *, db: Session, body: Any) -> dict[str, Any]:
        if is_task_notification(body):
            return self.ingest_task_notification(db=db, body=body)
        summary = self.ingest_records(db=db, body=body)
        response: dict[str, Any] = {"inserted": summary.inserted, "skipped": summary.skipped}
        if summary.inserted == 0:
            response["message"] = "No valid records to insert"
        return response

    def ingest_records(self, *, db: Session, body: Any) -> WebhookIngestionSummary:
        """
        Insert every valid record of the body in one batch.

        Invalid records are skipped and counted; a store failure rolls back
        the whole batch and raises StoreError.
        """

        summary, _ = self._ingest(db=db, raw_records=normalize_webhook_body(body))
        return summary

    def ingest_task_notification(
        self,
        *,
        db: Session,
        body: Mapping[str, Any],
        today: date | None = None,
    ) -> dict[str, Any]:
        """
        Handle a worker task notification.

        Rates carried in ``data.rates`` are ingested and a CSV snapshot of them
        is stored for the owning entity. A notification without rates but with
        an owner exports that entity's stored rates for the next
        ``data.days_ahead`` days instead. Snapshot and export failures are
        logged and never fail the notification.
        """

        task_id = str(body.get("task_id"))
        status = str(body.get("status"))
        data = body.get("data") if isinstance(body.get("data"), Mapping) else {}
        log_event(
            logger,
            logging.INFO,
            "scrape_task_notification",
            task_id=task_id,
            status=status,
            name=data.get("name"),
            type=data.get("type"),
        )

        response: dict[str, Any] = {
            "received": True,
            "task_id": task_id,
            "status": status,
            "timestamp": body.get("timestamp"),
            "inserted": 0,
            "skipped": 0,
        }
        rates = data.get("rates")
        if isinstance(rates, list) and rates:
            summary, records = self._ingest(
                db=db,
                raw_records=rates,
                inherited_property_id=data.get("property_id"),
                inherited_competitor_id=data.get("competitor_id"),
            )
            response["inserted"], response["skipped"] = summary.inserted, summary.skipped
            if records:
                self._store_snapshot(db=db, records=records, data=data)
        else:
            exported = self._export_stored_rates(db=db, data=data, today=today)
            if exported is not None:
                response["snapshot"] = exported.to_dict()
        return response

    def _ingest(
        self,
        *,
        db: Session,
        raw_records: Sequence[Any],
        inherited_property_id: Any = None,
        inherited_competitor_id: Any = None,
    ) -> tuple[WebhookIngestionSummary, list[RateRecordInput]]:
        scraped_at = datetime.now(timezone.utc)
        records: list[RateRecordInput] = []
        skipped = 0
        for index, raw in enumerate(raw_records):
            try:
                records.append(
                    coerce_webhook_record(
                        raw,
                        default_currency=self._default_currency,
                        inherited_property_id=inherited_property_id,
                        inherited_competitor_id=inherited_competitor_id,
                        scraped_at=scraped_at,
                    )
                )
            except InvalidWebhookRecord as exc:
                skipped += 1
                logger.warning("Skipping webhook record index=%s: %s", index, exc)

        if not records:
            log_event(logger, logging.INFO, "webhook_batch_empty", skipped=skipped)
            return WebhookIngestionSummary(inserted=0, skipped=skipped), []

        try:
            inserted = self._rate_repository_factory(db).bulk_insert(
                records,
                batch_size=self._insert_batch_size,
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Webhook batch insert failed records=%s: %s", len(records), exc)
            raise StoreError("Failed to save rates.") from exc

        log_event(logger, logging.INFO, "webhook_batch_inserted", inserted=inserted, skipped=skipped)
        return WebhookIngestionSummary(inserted=inserted, skipped=skipped), records

    def _store_snapshot(
        self,
        *,
        db: Session,
        records: list[RateRecordInput],
        data: Mapping[str, Any],
    ) -> None:
        entity = _notification_entity(data)
        if entity is None:
            return

        # Only rows the upload layout can carry are written and counted.
        owned = [record for record in records if record.entity == entity and record.adults in RENDERABLE_ADULTS]
        if not owned:
            return

        user_id = self._resolve_user_id(db=db, entity=entity, data=data)
        if user_id is None:
            return

        try:
            stored = self._storage_backend.save(
                user_id=user_id,
                entity_type=entity.entity_type,
                entity_id=entity.entity_id,
                content=render_rate_csv(owned).encode("utf-8"),
                tag=SNAPSHOT_TAG,
            )
        except StorageError as exc:
            logger.warning("CSV snapshot upload failed for %s: %s", entity, exc)
            return

        try:
            self._upload_repository_factory(db).create(
                user_id=user_id,
                entity=entity,
                stored_file=stored,
                record_count=len(owned),
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("CSV snapshot record failed for %s: %s", entity, exc)
            try:
                self._storage_backend.delete(storage_path=stored.storage_path)
            except StorageError:
                logger.warning("Could not remove orphaned snapshot %s", stored.storage_path)
            return
        log_event(logger, logging.INFO, "webhook_snapshot_stored", entity=str(entity), file_path=stored.storage_path)

    def _export_stored_rates(
        self,
        *,
        db: Session,
        data: Mapping[str, Any],
        today: date | None,
    ) -> BackfillFileResult | None:
        entity = _notification_entity(data)
        if entity is None:
            return None
        user_id = self._resolve_user_id(db=db, entity=entity, data=data)
        if user_id is None:
            return None

        result = self._rate_exporter.export_upcoming(
            db=db,
            entity=entity,
            user_id=user_id,
            days_ahead=_parse_days_ahead(data.get("days_ahead")),
            today=today,
        )
        log_event(
            logger,
            logging.INFO,
            "webhook_export_finished",
            entity=str(entity),
            created=result.created,
            count=result.count,
            reason=result.reason,
        )
        return result

    def _resolve_user_id(self, *, db: Session, entity: EntityRef, data: Mapping[str, Any]) -> uuid.UUID | None:
        """
        Use ``data.user_id`` when it is a valid id, otherwise the entity's owner.
        """

        try:
            user_id = _parse_uuid(data.get("user_id"))
        except InvalidWebhookRecord as exc:
            logger.warning("Ignoring task notification user_id: %s", exc)
            user_id = None
        if user_id is not None:
            return user_id

        try:
            user_id = self._entity_repository_factory(db).resolve_owner_user_id(entity)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Owner lookup failed for %s: %s", entity, exc)
            return None
        if user_id is None:
            logger.info("No owner resolved for %s; CSV snapshot skipped", entity)
        return user_id


def _notification_entity(data: Mapping[str, Any]) -> EntityRef | None:
    try:
        return EntityRef.from_owner_ids(
            property_id=_parse_uuid(data.get("property_id")),
            competitor_id=_parse_uuid(data.get("competitor_id")),
        )
    except ValueError:
        logger.info("Task notification has no single owner; CSV snapshot skipped")
        return None


def _parse_days_ahead(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        days = int(value)
    except (TypeError, ValueError):
        return None
    return days if days > 0 else None



def _parse_price(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidWebhookRecord("missing price")
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidWebhookRecord(f"invalid price {value!r}") from exc
    if not price.is_finite() or price <= 0:
        raise InvalidWebhookRecord(f"price must be positive, got {value!r}")
    return price


def _parse_date(value: Any, field_name: str) -> date:
    if value is None:
        raise InvalidWebhookRecord(f"missing {field_name}")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    parsed = normalize_rate_date(text)
    if parsed is not None:
        return parsed
    try:
        normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
        return datetime.fromisoformat(normalized).date()
    except ValueError as exc:
        raise InvalidWebhookRecord(f"invalid {field_name} {value!r}") from exc


def _parse_uuid(value: Any) -> uuid.UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise InvalidWebhookRecord(f"invalid id {value!r}") from exc


@lru_cache(maxsize=1)
def get_webhook_ingestion_service() -> WebhookIngestionService:
    settings = get_rate_upload_settings()
    storage_backend = LocalFileStorage(settings.storage_dir)
    return WebhookIngestionService(
        storage_backend=storage_backend,
        default_currency=settings.default_currency,
        insert_batch_size=settings.insert_batch_size,
        rate_exporter=RateExportService(storage_backend=storage_backend, days_ahead=settings.backfill_days_ahead),
    )
