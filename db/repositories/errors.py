"""
Repository-layer exceptions for blob storage and rate store flows.
"""

from __future__ import annotations


class RateRepositoryError(Exception):
    """Base exception for repository failures."""


class StorageError(RateRepositoryError):
    """Raised when writing, reading or deleting a stored CSV file fails."""


class StoreError(RateRepositoryError):
    """Raised when a database read/write/delete fails."""


class RatesClearedError(StoreError):
    """
    Raised when new rows failed to insert after the old rows were already
    deleted and committed. The entity is left with zero rate rows.
    """
