"""
app/repositories package marker.
"""

from app.repositories.entity_repository import EntityRepository
from app.repositories.rate_repository import RateRepository
from app.repositories.upload_repository import UploadRecordRepository

__all__ = [
    "EntityRepository",
    "RateRepository",
    "UploadRecordRepository",
]
