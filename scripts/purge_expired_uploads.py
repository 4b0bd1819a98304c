"""
Run the upload retention purge once, outside the API scheduler.
"""

from __future__ import annotations

import argparse
import json

from app.config import get_rate_upload_settings
from app.services.upload_history_service import UploadHistoryService
from db.repositories.storage import LocalFileStorage
from db.session import SessionLocal


def main() -> int:
    settings = get_rate_upload_settings()
    parser = argparse.ArgumentParser(description="Delete CSV uploads older than the retention window.")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=settings.retention_days,
        help=f"Defaults to RATE_UPLOAD_RETENTION_DAYS ({settings.retention_days}).",
    )
    args = parser.parse_args()

    service = UploadHistoryService(
        storage_backend=LocalFileStorage(settings.storage_dir),
        history_limit=settings.history_limit,
        retention_days=args.retention_days,
    )
    with SessionLocal() as db:
        purged = service.purge_expired_uploads(db=db)

    print(json.dumps({"retention_days": args.retention_days, "purged": purged}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
