"""
tests/test_webhook_ingestion.py

Unit tests for the scraper webhook: record coercion, batch ingestion, task
notifications and the HTTP endpoint.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routers.webhooks import router as webhooks_router
from app.config import WebhookSettings, get_webhook_settings
from app.domain.rates import EntityRef
from app.services.webhook_ingestion_service import (
    InvalidWebhookRecord,
    WebhookIngestionService,
    coerce_webhook_record,
    get_webhook_ingestion_service,
    normalize_webhook_body,
    verify_webhook_secret,
)
from conftest import COMPETITOR_A_ID, OWNER_ID, PROPERTY_ID
from db.repositories.errors import StoreError
from db.session import get_db

SECRET = "s3cret-value"
COMPETITOR_A = EntityRef.for_competitor(COMPETITOR_A_ID)
PROPERTY = EntityRef.for_property(PROPERTY_ID)


@pytest.fixture()
def service(storage, repository_factories) -> WebhookIngestionService:
    return WebhookIngestionService(storage_backend=storage, default_currency="THB", **repository_factories)


# ---------------------------------------------------------------------------
# Body normalization and record coercion
# ---------------------------------------------------------------------------


class TestNormalization:
    def test_accepts_object_data_envelope_and_array(self) -> None:
        record = {"price": 1}
        assert normalize_webhook_body(record) == [record]
        assert normalize_webhook_body({"data": [record, record]}) == [record, record]
        assert normalize_webhook_body([record]) == [record]

    def test_aliases_are_resolved(self) -> None:
        rate = coerce_webhook_record(
            {
                "amount": "1450.5",
                "checkIn": "2025-06-01",
                "check_out": "2025-06-02T00:00:00Z",
                "competitor_id": str(COMPETITOR_A_ID),
                "room_type": "Deluxe",
            },
            default_currency="THB",
        )
        assert rate.price_amount == Decimal("1450.5")
        assert rate.check_in_date == date(2025, 6, 1)
        assert rate.check_out_date == date(2025, 6, 2)
        assert rate.currency == "THB"
        assert rate.adults == 2
        assert rate.entity == COMPETITOR_A

    def test_envelope_owner_is_inherited(self) -> None:
        rate = coerce_webhook_record(
            {"price_amount": 900, "check_in_date": "2025-06-01", "check_out_date": "2025-06-02"},
            default_currency="USD",
            inherited_property_id=str(PROPERTY_ID),
        )
        assert rate.entity == PROPERTY
        assert rate.currency == "USD"

    @pytest.mark.parametrize(
        "record",
        [
            {"price": None, "check_in_date": "2025-06-01", "check_out_date": "2025-06-02"},
            {"price": 0, "check_in_date": "2025-06-01", "check_out_date": "2025-06-02"},
            {"price": "abc", "check_in_date": "2025-06-01", "check_out_date": "2025-06-02"},
            {"price": 100, "check_out_date": "2025-06-02"},
            {"price": 100, "check_in_date": "2025-06-01"},
            {"price": 100, "check_in_date": "later", "check_out_date": "2025-06-02"},
            {"price": 100, "check_in_date": "2025-06-02", "check_out_date": "2025-06-02"},
            {"price": 100, "check_in_date": "2025-06-01", "check_out_date": "2025-06-02", "adults": 0},
        ],
    )
    def test_invalid_records_are_rejected(self, record) -> None:
        record = {**record, "competitor_id": str(COMPETITOR_A_ID)}
        with pytest.raises(InvalidWebhookRecord):
            coerce_webhook_record(record, default_currency="THB")

    def test_owner_must_be_exactly_one(self) -> None:
        base = {"price": 100, "check_in_date": "2025-06-01", "check_out_date": "2025-06-02"}
        with pytest.raises(InvalidWebhookRecord):
            coerce_webhook_record(base, default_currency="THB")
        with pytest.raises(InvalidWebhookRecord):
            coerce_webhook_record(
                {**base, "property_id": str(PROPERTY_ID), "competitor_id": str(COMPETITOR_A_ID)},
                default_currency="THB",
            )

    def test_secret_comparison(self) -> None:
        assert verify_webhook_secret(SECRET, SECRET) is True
        assert verify_webhook_secret("wrong", SECRET) is False
        assert verify_webhook_secret(None, SECRET) is False
        assert verify_webhook_secret("", SECRET) is False


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TestIngestRecords:
    def test_valid_record_inserted_and_invalid_dropped(self, service, session) -> None:
        body = [
            {
                "price_amount": 1200,
                "check_in_date": "2025-01-01",
                "check_out_date": "2025-01-02",
                "competitor_id": str(COMPETITOR_A_ID),
            },
            {"price": None},
        ]

        response = service.ingest(db=session, body=body)

        assert response == {"inserted": 1, "skipped": 1}
        rows = session.rates_for(COMPETITOR_A)
        assert len(rows) == 1
        assert rows[0].price_amount == Decimal("1200")

    def test_records_without_owner_are_all_skipped(self, service, session) -> None:
        body = [
            {"price_amount": 1200, "check_in_date": "2025-01-01", "check_out_date": "2025-01-02"},
            {"price": None},
        ]

        response = service.ingest(db=session, body=body)

        assert response == {"inserted": 0, "skipped": 2, "message": "No valid records to insert"}
        assert session.committed.rates == []
        assert session.commits == 0

    def test_all_dropped_is_not_an_error(self, service, session) -> None:
        response = service.ingest(db=session, body={"data": [{"price": 0}, {"amount": -1}]})

        assert response["inserted"] == 0
        assert response["skipped"] == 2
        assert session.commits == 0

    def test_existing_rows_are_not_deduplicated(self, service, session) -> None:
        record = {
            "price": 800,
            "check_in_date": "2025-01-01",
            "check_out_date": "2025-01-02",
            "property_id": str(PROPERTY_ID),
        }
        service.ingest(db=session, body=record)
        service.ingest(db=session, body=record)

        assert len(session.rates_for(PROPERTY)) == 2

    def test_store_failure_fails_whole_batch(self, service, session) -> None:
        session.fail_insert = True
        body = [
            {"price": 800, "check_in_date": "2025-01-01", "check_out_date": "2025-01-02", "property_id": str(PROPERTY_ID)},
            {"price": 900, "check_in_date": "2025-01-02", "check_out_date": "2025-01-03", "property_id": str(PROPERTY_ID)},
        ]

        with pytest.raises(StoreError):
            service.ingest(db=session, body=body)
        assert session.rates_for(PROPERTY) == []
        assert session.rollbacks == 1


class TestTaskNotification:
    def test_rates_are_inserted_and_snapshot_recorded(self, service, session, storage) -> None:
        body = {
            "task_id": "task-42",
            "status": "completed",
            "data": {
                "competitor_id": str(COMPETITOR_A_ID),
                "rates": [
                    {"check_in_date": "2025-02-01", "check_out_date": "2025-02-02", "price_amount": 950, "adults": 1},
                    {"check_in_date": "2025-02-01", "check_out_date": "2025-02-02", "price_amount": 1300},
                    {"check_in_date": "2025-02-03", "price_amount": 1300},
                ],
            },
        }

        response = service.ingest(db=session, body=body)

        assert response["received"] is True
        assert response["task_id"] == "task-42"
        assert response["inserted"] == 2
        assert response["skipped"] == 1
        assert len(session.rates_for(COMPETITOR_A)) == 2

        upload = session.committed.uploads[0]
        assert upload.user_id == OWNER_ID
        assert upload.record_count == 2
        assert "_webhook_" in upload.file_name
        assert storage.files[upload.file_path].decode("utf-8").splitlines()[0] == "Date,Room_A1,Price_A1,Room_A2,Price_A2,Check_Out,Currency"

    def test_snapshot_failure_does_not_lose_rates(self, service, session, storage) -> None:
        storage.fail_save = True
        body = {
            "task_id": "task-43",
            "status": "completed",
            "data": {
                "property_id": str(PROPERTY_ID),
                "rates": [{"check_in_date": "2025-02-01", "check_out_date": "2025-02-02", "price_amount": 950}],
            },
        }

        response = service.ingest(db=session, body=body)

        assert response["inserted"] == 1
        assert len(session.rates_for(PROPERTY)) == 1
        assert session.committed.uploads == []

    def test_status_only_notification(self, service, session) -> None:
        response = service.ingest(db=session, body={"task_id": "t", "status": "processing"})
        assert response["inserted"] == 0
        assert "snapshot" not in response
        assert session.commits == 0

    def test_snapshot_counts_only_rendered_rows(self, service, session, storage) -> None:
        body = {
            "task_id": "task-44",
            "status": "completed",
            "data": {
                "property_id": str(PROPERTY_ID),
                "rates": [
                    {"check_in_date": "2025-02-01", "check_out_date": "2025-02-04", "price_amount": 95, "currency": "usd"},
                    {"check_in_date": "2025-02-01", "check_out_date": "2025-02-02", "price_amount": 300, "adults": 4},
                ],
            },
        }

        response = service.ingest(db=session, body=body)

        assert response["inserted"] == 2
        upload = session.committed.uploads[0]
        lines = storage.files[upload.file_path].decode("utf-8").splitlines()
        assert lines[1:] == ["2025-02-01,,,N/A,95,2025-02-04,USD"]
        assert upload.record_count == 1

    def test_invalid_user_id_falls_back_to_owner(self, service, session) -> None:
        body = {
            "task_id": "task-45",
            "status": "completed",
            "data": {
                "competitor_id": str(COMPETITOR_A_ID),
                "user_id": "not-a-uuid",
                "rates": [{"check_in_date": "2025-02-01", "check_out_date": "2025-02-02", "price_amount": 950}],
            },
        }

        service.ingest(db=session, body=body)

        assert session.committed.uploads[0].user_id == OWNER_ID

    def test_notification_without_rates_exports_stored_rates(self, service, session, storage) -> None:
        session.seed_rates(COMPETITOR_A, 5)
        body = {
            "task_id": "task-46",
            "status": "completed",
            "data": {"competitor_id": str(COMPETITOR_A_ID), "days_ahead": 1},
        }

        response = service.ingest_task_notification(db=session, body=body, today=date(2025, 1, 1))

        assert response["inserted"] == 0
        assert response["snapshot"]["created"] is True
        assert response["snapshot"]["count"] == 2
        upload = session.committed.uploads[0]
        assert upload.user_id == OWNER_ID
        assert upload.record_count == 2
        assert "_backfill_" in upload.file_name
        assert len(session.rates_for(COMPETITOR_A)) == 5

    def test_export_defaults_to_sixty_days(self, service, session) -> None:
        session.seed_rates(PROPERTY, 70)
        body = {"task_id": "task-47", "status": "completed", "data": {"property_id": str(PROPERTY_ID)}}

        response = service.ingest_task_notification(db=session, body=body, today=date(2025, 1, 1))

        assert response["snapshot"]["count"] == 61

    def test_export_problems_do_not_fail_the_notification(self, service, session, storage) -> None:
        session.seed_rates(PROPERTY, 2)
        storage.fail_save = True
        body = {"task_id": "task-48", "status": "failed", "data": {"property_id": str(PROPERTY_ID)}}

        response = service.ingest_task_notification(db=session, body=body, today=date(2025, 1, 1))

        assert response["received"] is True
        assert response["snapshot"]["created"] is False
        assert response["snapshot"]["reason"] == "storage failed"
        assert session.committed.uploads == []



# ---------------------------------------------------------------------------
# HTTP endpoint
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_client(service, session):
    def _make(secret: str | None = SECRET) -> TestClient:
        app = FastAPI()
        app.include_router(webhooks_router)
        app.dependency_overrides[get_db] = lambda: session
        app.dependency_overrides[get_webhook_settings] = lambda: WebhookSettings(secret=secret)
        app.dependency_overrides[get_webhook_ingestion_service] = lambda: service
        return TestClient(app)

    return _make


VALID_BODY = [
    {
        "price_amount": 1200,
        "check_in_date": "2025-01-01",
        "check_out_date": "2025-01-02",
        "competitor_id": str(COMPETITOR_A_ID),
    },
    {"price": None},
]


class TestWebhookEndpoint:
    def test_inserts_with_valid_secret(self, make_client, session) -> None:
        response = make_client().post(
            "/webhooks/scraper",
            json=VALID_BODY,
            headers={"x-webhook-secret": SECRET},
        )

        assert response.status_code == 200
        assert response.json()["inserted"] == 1
        assert len(session.rates_for(COMPETITOR_A)) == 1

    @pytest.mark.parametrize("headers", [{}, {"x-webhook-secret": "nope"}, {"x-webhook-secret": ""}])
    def test_bad_secret_is_rejected_without_writes(self, make_client, session, headers) -> None:
        response = make_client().post("/webhooks/scraper", json=VALID_BODY, headers=headers)

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        assert session.commits == 0
        assert session.rates_for(COMPETITOR_A, committed=False) == []

    def test_missing_server_secret(self, make_client, session) -> None:
        response = make_client(secret=None).post(
            "/webhooks/scraper",
            json=VALID_BODY,
            headers={"x-webhook-secret": SECRET},
        )

        assert response.status_code == 500
        assert "error" in response.json()
        assert session.commits == 0

    def test_store_failure_returns_500(self, make_client, session) -> None:
        session.fail_insert = True

        response = make_client().post(
            "/webhooks/scraper",
            json=VALID_BODY,
            headers={"x-webhook-secret": SECRET},
        )

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to save rates"

    def test_invalid_json(self, make_client) -> None:
        response = make_client().post(
            "/webhooks/scraper",
            content=b"{not json",
            headers={"x-webhook-secret": SECRET, "content-type": "application/json"},
        )

        assert response.status_code == 400
