"""
app/errors.py

Domain exceptions raised by the rate ingestion services.

Repository-level failures (blob storage, database) live in
db/repositories/errors.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.domain.rates import BatchRefreshSummary


class RateIngestionError(Exception):
    """Base exception for rate ingestion failures."""


class FormatError(RateIngestionError, ValueError):
    """Raised when a CSV file is unreadable or lacks the Date column."""


class EmptyDatasetError(RateIngestionError, ValueError):
    """Raised when a CSV file yields zero usable rate entries."""


class AuthError(RateIngestionError):
    """Raised when there is no authenticated user or the webhook secret is wrong."""


class EntityNotFoundError(RateIngestionError, LookupError):
    """Raised when a property/competitor does not exist or is not owned by the caller."""


class WorkerError(RateIngestionError):
    """Raised when the external scrape worker is unreachable or answers non-2xx."""

    def __init__(self, message: str, *, status_code: int | None = None, details: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class PartialBatchError(RateIngestionError):
    """
    Raised when a multi-entity refresh processed nothing successfully.
    """

    def __init__(self, summary: "BatchRefreshSummary") -> None:
        super().__init__("; ".join(summary.errors) or "Batch refresh failed.")
        self.summary = summary
