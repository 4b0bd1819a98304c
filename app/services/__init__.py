"""
app/services package marker.
"""

from app.services.rate_export_service import RateExportService, get_rate_export_service
from app.services.scrape_job_tracker import ScrapeJobTracker, build_scrape_job_tracker
from app.services.scrape_trigger_service import ScrapeTriggerService, get_scrape_trigger_service
from app.services.upload_history_service import UploadHistoryService, get_upload_history_service
from app.services.upload_reconciler import UploadReconciler, get_upload_reconciler
from app.services.webhook_ingestion_service import WebhookIngestionService, get_webhook_ingestion_service

__all__ = [
    "RateExportService",
    "get_rate_export_service",
    "ScrapeJobTracker",
    "build_scrape_job_tracker",
    "ScrapeTriggerService",
    "get_scrape_trigger_service",
    "UploadHistoryService",
    "get_upload_history_service",
    "UploadReconciler",
    "get_upload_reconciler",
    "WebhookIngestionService",
    "get_webhook_ingestion_service",
]
