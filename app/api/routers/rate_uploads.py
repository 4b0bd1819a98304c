"""
app/api/routers/rate_uploads.py

Rate CSV upload, refresh, upload history and backfill export endpoints.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_csv_upload, get_current_user_id
from app.api.errors import to_http_exception
from app.config import RateUploadSettings, get_rate_upload_settings
from app.domain.rates import BatchRefreshSummary, EntityRef, ReconcileResult
from app.errors import RateIngestionError
from app.schemas.rate_uploads import (
    BackfillRequest,
    BatchRefreshResponse,
    EntityRefreshResponse,
    ReconcileResponse,
    RowValidationErrorResponse,
    UploadListResponse,
    UploadRecordResponse,
)
from app.services.rate_export_service import RateExportService, get_rate_export_service
from app.services.upload_history_service import UploadHistoryService, get_upload_history_service
from app.services.upload_reconciler import UploadReconciler, get_upload_reconciler
from db.repositories.errors import RateRepositoryError
from db.session import get_db

router = APIRouter(tags=["rates"])


@router.post("/properties/{property_id}/rates/upload", response_model=ReconcileResponse)
def upload_property_rates(
    property_id: uuid.UUID,
    file: UploadFile = Depends(get_csv_upload),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    reconciler: UploadReconciler = Depends(get_upload_reconciler),
    settings: RateUploadSettings = Depends(get_rate_upload_settings),
) -> ReconcileResponse:
    """
    Replace all rates of a property with the uploaded CSV.
    """

    return _reconcile_upload(
        entity=EntityRef.for_property(property_id),
        file=file,
        user_id=user_id,
        db=db,
        reconciler=reconciler,
        max_bytes=settings.max_upload_bytes,
    )


@router.post("/competitors/{competitor_id}/rates/upload", response_model=ReconcileResponse)
def upload_competitor_rates(
    competitor_id: uuid.UUID,
    file: UploadFile = Depends(get_csv_upload),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    reconciler: UploadReconciler = Depends(get_upload_reconciler),
    settings: RateUploadSettings = Depends(get_rate_upload_settings),
) -> ReconcileResponse:
    """
    Replace all rates of a competitor with the uploaded CSV.
    """

    return _reconcile_upload(
        entity=EntityRef.for_competitor(competitor_id),
        file=file,
        user_id=user_id,
        db=db,
        reconciler=reconciler,
        max_bytes=settings.max_upload_bytes,
    )


@router.post("/properties/{property_id}/rates/refresh", response_model=BatchRefreshResponse)
def refresh_property_rates(
    property_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    reconciler: UploadReconciler = Depends(get_upload_reconciler),
) -> BatchRefreshResponse:
    """
    Re-apply the latest stored CSV of the property and each competitor.
    """

    try:
        summary = reconciler.refresh_property(db=db, property_id=property_id, user_id=user_id)
    except (RateIngestionError, RateRepositoryError) as exc:
        raise to_http_exception(exc) from exc
    return _to_batch_response(summary)


@router.get("/uploads", response_model=UploadListResponse)
def list_uploads(
    property_id: uuid.UUID | None = Query(default=None),
    competitor_id: uuid.UUID | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=100),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    history: UploadHistoryService = Depends(get_upload_history_service),
) -> UploadListResponse:
    """
    Most recent uploads, optionally for one property or competitor.
    """

    entity: EntityRef | None = None
    if property_id is not None or competitor_id is not None:
        try:
            entity = EntityRef.from_owner_ids(property_id=property_id, competitor_id=competitor_id)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        uploads = history.list_uploads(db=db, user_id=user_id, entity=entity, limit=limit)
    except (RateIngestionError, RateRepositoryError) as exc:
        raise to_http_exception(exc) from exc
    return UploadListResponse(uploads=[UploadRecordResponse.model_validate(upload) for upload in uploads])


@router.get("/uploads/{upload_id}/download")
def download_upload(
    upload_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    history: UploadHistoryService = Depends(get_upload_history_service),
) -> Response:
    try:
        upload, content = history.read_upload(db=db, upload_id=upload_id, user_id=user_id)
    except (RateIngestionError, RateRepositoryError) as exc:
        raise to_http_exception(exc) from exc
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{upload.file_name}"'},
    )


@router.delete("/uploads/{upload_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_upload(
    upload_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    history: UploadHistoryService = Depends(get_upload_history_service),
) -> Response:
    """
    Delete an upload and its stored file. Rate rows are not touched.
    """

    try:
        history.delete_upload(db=db, upload_id=upload_id, user_id=user_id)
    except (RateIngestionError, RateRepositoryError) as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/rates/backfill-csv")
def generate_backfill_csv(
    request: BackfillRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    exporter: RateExportService = Depends(get_rate_export_service),
) -> dict:
    """
    Export upcoming stored rates of each requested entity as an upload CSV.
    """

    try:
        return exporter.generate_backfill(
            db=db,
            user_id=user_id,
            property_id=request.property_id,
            competitor_ids=request.competitor_ids,
            days_ahead=request.days_ahead,
        )
    except (RateIngestionError, RateRepositoryError) as exc:
        raise to_http_exception(exc) from exc


def _reconcile_upload(
    *,
    entity: EntityRef,
    file: UploadFile,
    user_id: uuid.UUID,
    db: Session,
    reconciler: UploadReconciler,
    max_bytes: int,
) -> ReconcileResponse:
    try:
        content = file.file.read(max_bytes + 1)
        if len(content) > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"CSV exceeds the {max_bytes} byte upload limit.",
            )
        result = reconciler.reconcile_csv(db=db, entity=entity, content=content, user_id=user_id)
    except (RateIngestionError, RateRepositoryError) as exc:
        raise to_http_exception(exc) from exc
    finally:
        file.file.close()
    return _to_reconcile_response(result)


def _to_reconcile_response(result: ReconcileResult) -> ReconcileResponse:
    return ReconcileResponse(
        entity_type=result.entity.entity_type,
        entity_id=result.entity.entity_id,
        upload_id=result.upload_id,
        file_path=result.file_path,
        rows_deleted=result.rows_deleted,
        rows_inserted=result.rows_inserted,
        rows_skipped=result.rows_skipped,
        validation_errors=[
            RowValidationErrorResponse(
                row_number=error.row_number,
                column=error.column,
                message=error.message,
                value=error.value,
            )
            for error in result.validation_errors
        ],
    )


def _to_batch_response(summary: BatchRefreshSummary) -> BatchRefreshResponse:
    return BatchRefreshResponse(
        status=summary.status,
        total_processed=summary.total_processed,
        files_processed=summary.files_processed,
        errors=summary.errors,
        entities=[
            EntityRefreshResponse(
                entity_type=outcome.entity.entity_type,
                entity_id=outcome.entity.entity_id,
                name=outcome.name,
                rows_processed=outcome.rows_processed,
                error=outcome.error,
            )
            for outcome in summary.outcomes
        ],
    )
