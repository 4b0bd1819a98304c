"""
app/schemas package marker.
"""

from app.schemas.rate_uploads import (
    BackfillRequest,
    BatchRefreshResponse,
    ReconcileResponse,
    UploadListResponse,
    UploadRecordResponse,
)
from app.schemas.scrape import ScrapeTaskStatusResponse, ScrapeTriggerRequest, ScrapeTriggerResponse

__all__ = [
    "BackfillRequest",
    "BatchRefreshResponse",
    "ReconcileResponse",
    "UploadListResponse",
    "UploadRecordResponse",
    "ScrapeTaskStatusResponse",
    "ScrapeTriggerRequest",
    "ScrapeTriggerResponse",
]
