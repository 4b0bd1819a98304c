"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation and authentication.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import Depends, File, HTTPException, UploadFile, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import AuthSettings, get_auth_settings

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}

bearer_scheme = HTTPBearer(auto_error=False)


def get_csv_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a CSV by extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_csv_filename = filename.endswith(".csv")
    is_csv_content_type = content_type in CSV_CONTENT_TYPES

    if not is_csv_filename and not is_csv_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed.",
        )

    return file


def decode_user_id(token: str, settings: AuthSettings) -> uuid.UUID:
    """
    Verify a bearer token and return the user id from its `sub` claim.

    Raises JWTError for a bad signature, expiry or audience, and ValueError
    when `sub` is missing or not a UUID.
    """

    if not settings.jwt_secret:
        raise RuntimeError("AUTH_JWT_SECRET is not configured.")
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
    )
    subject = payload.get("sub")
    if not subject:
        raise ValueError("Token has no subject.")
    return uuid.UUID(str(subject))


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: AuthSettings = Depends(get_auth_settings),
) -> uuid.UUID:
    """
    Resolve the authenticated user from the Authorization header.
    """

    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_user_id(credentials.credentials, settings)
    except RuntimeError as exc:
        logger.error("Token verification unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication is not configured.",
        ) from exc
    except (JWTError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
