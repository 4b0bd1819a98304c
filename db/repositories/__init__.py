"""
Storage-layer exports.
"""

from db.repositories.errors import RateRepositoryError, RatesClearedError, StorageError, StoreError
from db.repositories.storage import FileStorageBackend, LocalFileStorage, StoredFileMetadata, build_rate_file_name

__all__ = [
    "FileStorageBackend",
    "LocalFileStorage",
    "build_rate_file_name",
    "StoredFileMetadata",
    "RateRepositoryError",
    "StorageError",
    "StoreError",
    "RatesClearedError",
]
