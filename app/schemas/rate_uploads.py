"""
app/schemas/rate_uploads.py

Request/response schemas for rate CSV uploads, refresh, history and backfill.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RowValidationErrorResponse(BaseModel):
    """
    One CSV row dropped because its date was unrecognized.
    """

    row_number: int = Field(..., ge=1)
    message: str
    column: str | None = None
    value: str | None = None


class ReconcileResponse(BaseModel):
    entity_type: str
    entity_id: uuid.UUID
    upload_id: uuid.UUID
    file_path: str
    rows_deleted: int = Field(..., ge=0)
    rows_inserted: int = Field(..., ge=0)
    rows_skipped: int = Field(..., ge=0)
    validation_errors: list[RowValidationErrorResponse] = Field(default_factory=list)


class EntityRefreshResponse(BaseModel):
    entity_type: str
    entity_id: uuid.UUID
    name: str
    rows_processed: int = Field(..., ge=0)
    error: str | None = None


class BatchRefreshResponse(BaseModel):
    """
    Aggregate result of refreshing a property and its competitors.
    """

    status: str
    total_processed: int = Field(..., ge=0)
    files_processed: int = Field(..., ge=0)
    errors: list[str] = Field(default_factory=list)
    entities: list[EntityRefreshResponse] = Field(default_factory=list)


class UploadRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    property_id: uuid.UUID | None = None
    competitor_id: uuid.UUID | None = None
    file_name: str
    file_path: str
    record_count: int
    uploaded_at: datetime


class UploadListResponse(BaseModel):
    uploads: list[UploadRecordResponse] = Field(default_factory=list)


class BackfillRequest(BaseModel):
    property_id: uuid.UUID | None = None
    competitor_ids: list[uuid.UUID] = Field(default_factory=list)
    days_ahead: int | None = Field(default=None, ge=1, le=365)
