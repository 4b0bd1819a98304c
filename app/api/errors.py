"""
app/api/errors.py

Translation of service exceptions into HTTP errors.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from app.errors import (
    AuthError,
    EmptyDatasetError,
    EntityNotFoundError,
    FormatError,
    PartialBatchError,
    RateIngestionError,
    WorkerError,
)
from db.repositories.errors import RateRepositoryError, RatesClearedError, StorageError, StoreError

logger = logging.getLogger(__name__)


def to_http_exception(exc: RateIngestionError | RateRepositoryError) -> HTTPException:
    """
    Map a domain or repository exception to the HTTP status callers expect.
    """

    if isinstance(exc, (FormatError, EmptyDatasetError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AuthError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, EntityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RatesClearedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, WorkerError):
        detail = {"error": str(exc)}
        if exc.details:
            detail["details"] = exc.details
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)
    if isinstance(exc, PartialBatchError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": str(exc),
                "status": exc.summary.status,
                "errors": exc.summary.errors,
            },
        )
    if isinstance(exc, (StorageError, StoreError)):
        logger.error("Persistence failure: %s", exc)
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    logger.exception("Unhandled ingestion error", exc_info=exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error.")
