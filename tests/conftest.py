"""
tests/conftest.py

In-memory stand-ins for the database session, repositories and file storage.

FakeSession keeps a working copy and a committed copy of its tables, so a
rollback really discards uncommitted work and tests can assert on what
would have been persisted.
"""

from __future__ import annotations

import copy
import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.domain.rates import EntityRef, EntityType
from db.repositories.errors import StorageError
from db.repositories.storage import StoredFileMetadata, build_rate_file_name

OWNER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
OTHER_USER_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")
PROPERTY_ID = uuid.UUID("aaaaaaaa-0000-4000-8000-000000000001")
COMPETITOR_A_ID = uuid.UUID("bbbbbbbb-0000-4000-8000-000000000001")
COMPETITOR_B_ID = uuid.UUID("bbbbbbbb-0000-4000-8000-000000000002")


@dataclass
class _Tables:
    rates: list[Any] = field(default_factory=list)
    uploads: list[Any] = field(default_factory=list)


class FakeSession:
    def __init__(self) -> None:
        self.properties: dict[uuid.UUID, SimpleNamespace] = {}
        self.competitors: dict[uuid.UUID, SimpleNamespace] = {}
        self.working = _Tables()
        self.committed = _Tables()
        self.fail_delete = False
        self.fail_insert = False
        self.fail_upload_create = False
        self.commits = 0
        self.rollbacks = 0

    def add_property(self, property_id: uuid.UUID, name: str, user_id: uuid.UUID = OWNER_ID) -> None:
        self.properties[property_id] = SimpleNamespace(
            id=property_id,
            user_id=user_id,
            name=name,
            booking_url=f"https://booking.example/{name.lower().replace(' ', '-')}",
        )

    def add_competitor(self, competitor_id: uuid.UUID, property_id: uuid.UUID, name: str) -> None:
        self.competitors[competitor_id] = SimpleNamespace(
            id=competitor_id,
            property_id=property_id,
            name=name,
            booking_url=None,
        )

    def seed_rates(self, entity: EntityRef, count: int) -> None:
        start = datetime(2025, 1, 1, tzinfo=timezone.utc).date()
        for offset in range(count):
            row = SimpleNamespace(
                entity=entity,
                check_in_date=start + timedelta(days=offset),
                check_out_date=start + timedelta(days=offset + 1),
                price_amount=100,
                currency="THB",
                room_type="Old room",
                adults=2,
                scraped_at=None,
            )
            self.working.rates.append(row)
        self.commit()

    def rates_for(self, entity: EntityRef, *, committed: bool = True) -> list[Any]:
        tables = self.committed if committed else self.working
        return [row for row in tables.rates if row.entity == entity]

    def commit(self) -> None:
        self.committed = copy.deepcopy(self.working)
        self.commits += 1

    def rollback(self) -> None:
        self.working = copy.deepcopy(self.committed)
        self.rollbacks += 1


class FakeRateRepository:
    def __init__(self, session: FakeSession) -> None:
        self._session = session

    def delete_for_entity(self, entity: EntityRef) -> int:
        if self._session.fail_delete:
            raise SQLAlchemyError("delete failed")
        before = len(self._session.working.rates)
        self._session.working.rates = [row for row in self._session.working.rates if row.entity != entity]
        return before - len(self._session.working.rates)

    def bulk_insert(self, records, *, batch_size: int = 1000) -> int:
        if self._session.fail_insert:
            raise SQLAlchemyError("insert failed")
        self._session.working.rates.extend(records)
        return len(records)

    def list_for_entity(self, entity: EntityRef, *, date_from=None, date_to=None, adults=None) -> list[Any]:
        rows = [row for row in self._session.working.rates if row.entity == entity]
        if date_from is not None:
            rows = [row for row in rows if row.check_in_date >= date_from]
        if date_to is not None:
            rows = [row for row in rows if row.check_in_date <= date_to]
        if adults is not None:
            rows = [row for row in rows if row.adults == adults]
        return sorted(rows, key=lambda row: row.check_in_date)


class FakeUploadRepository:
    def __init__(self, session: FakeSession) -> None:
        self._session = session

    def create(self, *, user_id, entity, stored_file, record_count):
        if self._session.fail_upload_create:
            raise SQLAlchemyError("upload insert failed")
        upload = SimpleNamespace(
            id=uuid.uuid4(),
            user_id=user_id,
            entity=entity,
            property_id=entity.property_id,
            competitor_id=entity.competitor_id,
            file_name=stored_file.file_name,
            file_path=stored_file.storage_path,
            record_count=record_count,
            uploaded_at=stored_file.stored_at,
        )
        self._session.working.uploads.append(upload)
        return upload

    def get(self, upload_id):
        return next((upload for upload in self._session.working.uploads if upload.id == upload_id), None)

    def latest_for_entity(self, entity):
        uploads = self.list_recent(entity=entity, limit=1)
        return uploads[0] if uploads else None

    def list_recent(self, *, entity=None, user_id=None, limit=10):
        uploads = list(reversed(self._session.working.uploads))
        if entity is not None:
            uploads = [upload for upload in uploads if upload.entity == entity]
        if user_id is not None:
            uploads = [upload for upload in uploads if upload.user_id == user_id]
        return uploads[:limit]

    def list_older_than(self, cutoff):
        return [upload for upload in self._session.working.uploads if upload.uploaded_at < cutoff]

    def delete(self, upload) -> None:
        self._session.working.uploads = [item for item in self._session.working.uploads if item.id != upload.id]


class FakeEntityRepository:
    def __init__(self, session: FakeSession) -> None:
        self._session = session

    def get_property(self, property_id):
        return self._session.properties.get(property_id)

    def get_competitor(self, competitor_id):
        return self._session.competitors.get(competitor_id)

    def list_competitors(self, property_id):
        return sorted(
            (item for item in self._session.competitors.values() if item.property_id == property_id),
            key=lambda item: item.name,
        )

    def resolve_owner_user_id(self, entity: EntityRef):
        if entity.entity_type == EntityType.PROPERTY:
            found = self.get_property(entity.entity_id)
            return found.user_id if found is not None else None
        competitor = self.get_competitor(entity.entity_id)
        if competitor is None:
            return None
        parent = self.get_property(competitor.property_id)
        return parent.user_id if parent is not None else None


class FakeStorage:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.fail_save = False
        self.fail_read = False
        self.deleted: list[str] = []

    def save(self, *, user_id, entity_type, entity_id, content, tag=None) -> StoredFileMetadata:
        if self.fail_save:
            raise StorageError("Failed to write CSV file to storage.")
        stored_at = datetime.now(timezone.utc)
        file_name = build_rate_file_name(
            entity_type=entity_type,
            entity_id=entity_id,
            stored_at=stored_at,
            tag=tag,
        )
        path = f"{user_id}/{file_name}"
        self.files[path] = content
        return StoredFileMetadata(
            file_name=file_name,
            storage_path=path,
            file_size_bytes=len(content),
            checksum=hashlib.sha256(content).hexdigest(),
            stored_at=stored_at,
        )

    def read(self, *, storage_path: str) -> bytes:
        if self.fail_read or storage_path not in self.files:
            raise StorageError(f"Failed to read stored file: {storage_path}")
        return self.files[storage_path]

    def delete(self, *, storage_path: str) -> None:
        self.files.pop(storage_path, None)
        self.deleted.append(storage_path)


@pytest.fixture()
def session() -> FakeSession:
    """A session with one property owned by OWNER_ID and two competitors."""
    fake = FakeSession()
    fake.add_property(PROPERTY_ID, "Sunset Resort")
    fake.add_competitor(COMPETITOR_A_ID, PROPERTY_ID, "Beach Inn")
    fake.add_competitor(COMPETITOR_B_ID, PROPERTY_ID, "City Lodge")
    return fake


@pytest.fixture()
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def repository_factories() -> dict[str, Any]:
    return {
        "rate_repository_factory": FakeRateRepository,
        "upload_repository_factory": FakeUploadRepository,
        "entity_repository_factory": FakeEntityRepository,
    }
