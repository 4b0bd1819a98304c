"""
tests/test_rate_export.py
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.domain.rates import EntityRef
from app.errors import AuthError
from app.parsers.rate_csv import parse_rate_csv
from app.services.rate_export_service import RateExportService
from app.services.upload_reconciler import UploadReconciler
from conftest import COMPETITOR_A_ID, COMPETITOR_B_ID, OTHER_USER_ID, OWNER_ID, PROPERTY_ID

PROPERTY = EntityRef.for_property(PROPERTY_ID)
COMPETITOR_A = EntityRef.for_competitor(COMPETITOR_A_ID)
TODAY = date(2025, 1, 1)


@pytest.fixture()
def service(storage, repository_factories) -> RateExportService:
    return RateExportService(storage_backend=storage, days_ahead=60, **repository_factories)


def test_backfill_writes_replayable_csv(service, session, storage) -> None:
    session.seed_rates(PROPERTY, 3)

    response = service.generate_backfill(db=session, user_id=OWNER_ID, property_id=PROPERTY_ID, today=TODAY)

    result = response["results"]["property"]
    assert response["ok"] is True
    assert result["created"] is True
    assert result["count"] == 3
    assert "_backfill_" in result["file_path"]

    parsed = parse_rate_csv(storage.files[result["file_path"]].decode("utf-8"))
    assert [entry.check_in_date for entry in parsed.entries] == [TODAY + timedelta(days=n) for n in range(3)]
    assert session.committed.uploads[0].record_count == 3


def test_window_excludes_later_rates(service, session) -> None:
    session.seed_rates(PROPERTY, 10)

    response = service.generate_backfill(
        db=session,
        user_id=OWNER_ID,
        property_id=PROPERTY_ID,
        days_ahead=4,
        today=TODAY,
    )

    assert response["results"]["property"]["count"] == 5


def test_each_competitor_reported_independently(service, session) -> None:
    session.seed_rates(COMPETITOR_A, 2)

    response = service.generate_backfill(
        db=session,
        user_id=OWNER_ID,
        competitor_ids=[COMPETITOR_A_ID, COMPETITOR_B_ID],
        today=TODAY,
    )

    competitors = response["results"]["competitors"]
    assert response["results"]["property"] is None
    assert competitors[str(COMPETITOR_A_ID)]["created"] is True
    assert competitors[str(COMPETITOR_B_ID)] == {
        "created": False,
        "count": 0,
        "file_path": None,
        "reason": "no rates in window",
    }


def test_entities_of_other_users_are_not_exported(service, session, storage) -> None:
    session.seed_rates(PROPERTY, 2)

    response = service.generate_backfill(db=session, user_id=OTHER_USER_ID, property_id=PROPERTY_ID, today=TODAY)

    assert response["results"]["property"]["reason"] == "not found"
    assert storage.files == {}


def test_storage_failure_is_reported(service, session, storage) -> None:
    session.seed_rates(PROPERTY, 1)
    storage.fail_save = True

    response = service.generate_backfill(db=session, user_id=OWNER_ID, property_id=PROPERTY_ID, today=TODAY)

    assert response["results"]["property"]["reason"] == "storage failed"
    assert session.committed.uploads == []


def test_requires_session(service, session) -> None:
    with pytest.raises(AuthError):
        service.generate_backfill(db=session, user_id=None, property_id=PROPERTY_ID)


def test_refresh_from_backfill_keeps_stay_and_currency(service, session, storage, repository_factories) -> None:
    session.working.rates.append(
        SimpleNamespace(
            entity=PROPERTY,
            check_in_date=TODAY,
            check_out_date=TODAY + timedelta(days=3),
            price_amount=Decimal("120"),
            currency="USD",
            room_type="Suite",
            adults=1,
            scraped_at=None,
        )
    )
    session.commit()
    service.generate_backfill(db=session, user_id=OWNER_ID, property_id=PROPERTY_ID, today=TODAY)
    reconciler = UploadReconciler(storage_backend=storage, default_currency="THB", **repository_factories)

    reconciler.refresh_property(db=session, property_id=PROPERTY_ID, user_id=OWNER_ID)

    [row] = session.rates_for(PROPERTY)
    assert row.check_out_date == TODAY + timedelta(days=3)
    assert row.currency == "USD"
    assert row.price_amount == Decimal("120")


def test_record_count_matches_rendered_lines(service, session, storage) -> None:
    session.seed_rates(PROPERTY, 2)
    session.working.rates[0].adults = 4
    session.commit()

    response = service.generate_backfill(db=session, user_id=OWNER_ID, property_id=PROPERTY_ID, today=TODAY)

    result = response["results"]["property"]
    lines = storage.files[result["file_path"]].decode("utf-8").splitlines()
    assert result["count"] == 1
    assert session.committed.uploads[0].record_count == len(lines) - 1
