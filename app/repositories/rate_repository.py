"""
app/repositories/rate_repository.py

Persistence for rate rows, always scoped to one owning entity.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from app.domain.rates import EntityRef, EntityType, RateRecordInput
from db.models.scraped_rate import ScrapedRate


def _owner_column(entity: EntityRef):
    if entity.entity_type == EntityType.PROPERTY:
        return ScrapedRate.property_id
    return ScrapedRate.competitor_id


class RateRepository:
    """
    Repository for the rate table. Callers own the transaction.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def delete_for_entity(self, entity: EntityRef) -> int:
        """
        Delete every rate row of the entity, regardless of date.
        """

        result = self._session.execute(
            delete(ScrapedRate).where(_owner_column(entity) == entity.entity_id)
        )
        return result.rowcount or 0

    def bulk_insert(
        self,
        records: Sequence[RateRecordInput],
        *,
        batch_size: int = 1000,
    ) -> int:
        """
        Insert rate rows in configurable chunks.
        """

        if not records:
            return 0

        size = max(1, batch_size)
        now = datetime.now(timezone.utc)
        inserted = 0
        for start in range(0, len(records), size):
            chunk = records[start : start + size]
            payloads: list[dict[str, Any]] = [
                {
                    "property_id": row.entity.property_id,
                    "competitor_id": row.entity.competitor_id,
                    "check_in_date": row.check_in_date,
                    "check_out_date": row.check_out_date,
                    "price_amount": row.price_amount,
                    "currency": row.currency,
                    "room_type": row.room_type,
                    "adults": row.adults,
                    "scraped_at": row.scraped_at or now,
                }
                for row in chunk
            ]
            self._session.execute(insert(ScrapedRate), payloads)
            inserted += len(payloads)
        return inserted

    def list_for_entity(
        self,
        entity: EntityRef,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        adults: int | None = None,
    ) -> list[ScrapedRate]:
        """
        Rates ordered by check-in date, newest scrape first within a date.
        """

        stmt = select(ScrapedRate).where(_owner_column(entity) == entity.entity_id)
        if date_from is not None:
            stmt = stmt.where(ScrapedRate.check_in_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(ScrapedRate.check_in_date <= date_to)
        if adults is not None:
            stmt = stmt.where(ScrapedRate.adults == adults)
        stmt = stmt.order_by(ScrapedRate.check_in_date, ScrapedRate.scraped_at.desc())
        return list(self._session.scalars(stmt).all())

