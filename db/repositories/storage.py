"""
Blob storage for rate CSV files.

Files live under a per-user folder:
``{user_id}/{entity_type}_{entity_id}_[{tag}_]{timestamp}_{rand}.csv``.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from db.repositories.errors import StorageError


@dataclass(frozen=True)
class StoredFileMetadata:
    """
    What a backend reports after writing one CSV file.

    `storage_path` is relative to the backend root and is what upload records
    keep in `file_path`.
    """

    file_name: str
    storage_path: str
    file_size_bytes: int
    checksum: str
    stored_at: datetime


class FileStorageBackend(Protocol):
    """
    Storage backend used by the reconciler, webhook and export flows.
    """

    def save(
        self,
        *,
        user_id: uuid.UUID,
        entity_type: str,
        entity_id: uuid.UUID,
        content: bytes,
        tag: str | None = None,
    ) -> StoredFileMetadata:
        ...

    def read(self, *, storage_path: str) -> bytes:
        ...

    def delete(self, *, storage_path: str) -> None:
        ...


def build_rate_file_name(
    *,
    entity_type: str,
    entity_id: uuid.UUID,
    stored_at: datetime,
    tag: str | None = None,
) -> str:
    timestamp = stored_at.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    suffix = uuid.uuid4().hex[:6]
    parts = [entity_type, str(entity_id)]
    if tag:
        parts.append(tag)
    parts.extend([timestamp, suffix])
    return "_".join(parts) + ".csv"


class LocalFileStorage:
    """
    Local filesystem storage backend.
    """

    def __init__(self, root_dir: str | Path = "data/rate-csvs") -> None:
        self._root_dir = Path(root_dir)

    def save(
        self,
        *,
        user_id: uuid.UUID,
        entity_type: str,
        entity_id: uuid.UUID,
        content: bytes,
        tag: str | None = None,
    ) -> StoredFileMetadata:
        stored_at = datetime.now(timezone.utc)
        file_name = build_rate_file_name(
            entity_type=entity_type,
            entity_id=entity_id,
            stored_at=stored_at,
            tag=tag,
        )
        relative_path = Path(str(user_id)) / file_name
        absolute_path = self._root_dir / relative_path

        # Never overwrite an existing upload.
        if absolute_path.exists():
            raise StorageError(f"Stored file already exists: {relative_path.as_posix()}")

        tmp_path = absolute_path.with_suffix(f"{absolute_path.suffix}.tmp")
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("wb") as handle:
                handle.write(content)
            tmp_path.replace(absolute_path)
        except OSError as exc:
            raise StorageError("Failed to write CSV file to storage.") from exc
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass

        return StoredFileMetadata(
            file_name=file_name,
            storage_path=relative_path.as_posix(),
            file_size_bytes=len(content),
            checksum=hashlib.sha256(content).hexdigest(),
            stored_at=stored_at,
        )

    def read(self, *, storage_path: str) -> bytes:
        target = self._resolve(storage_path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read stored file: {storage_path}") from exc

    def delete(self, *, storage_path: str) -> None:
        target = self._resolve(storage_path)
        if not target.exists():
            return
        try:
            target.unlink()
        except OSError as exc:
            raise StorageError("Failed to delete stored file.") from exc

    def _resolve(self, storage_path: str) -> Path:
        root = self._root_dir.resolve()
        target = (root / Path(storage_path)).resolve()
        if root not in target.parents:
            raise StorageError(f"Storage path escapes the storage root: {storage_path}")
        return target
